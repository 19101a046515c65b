"""ライフサイクル操作の例外体系 (HTTPステータス相当を保持)"""


class LifecycleError(Exception):
    """全ライフサイクル例外の基底。messageはそのまま利用者に返す"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LifecycleError):
    """入力不正 (呼び出し側の誤り、リトライ不可)"""

    status_code = 400


class AuthenticationError(LifecycleError):
    """呼び出し元IDが無い・無効"""

    status_code = 401


class AuthorizationError(LifecycleError):
    """IDは有効だが権限不足"""

    status_code = 403


class NotFoundError(LifecycleError):
    status_code = 404


class ConflictError(LifecycleError):
    """現在の状態に適用できない操作 (解約済みの再解約など)"""

    status_code = 400


class UpstreamError(LifecycleError):
    """決済ゲートウェイ・メール送信の失敗。主処理には波及させない"""

    status_code = 502


class PersistenceError(LifecycleError):
    """DB書き込み失敗。操作全体を中断する"""

    status_code = 500
