from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """アプリケーション設定"""

    # データベース
    DATABASE_URL: str = "mysql+pymysql://printgest:printgest@db:3306/printgest?charset=utf8mb4"

    # Redis (スケジューラのハートビート)
    REDIS_URL: str = "redis://redis:6379/0"

    # 認証 (IdP発行のJWTを検証)
    JWT_SECRET: str = "dev-secret-change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"

    # Stripe
    STRIPE_SECRET_KEY: str = ""

    # Resend
    RESEND_API_KEY: str = ""
    RESEND_FROM_EMAIL: str = "Printgest <notifications@printgest.com>"

    # オブジェクトストレージ (S3互換)
    STORAGE_ENDPOINT_URL: str = ""
    STORAGE_REGION: str = "auto"
    STORAGE_ACCESS_KEY_ID: str = ""
    STORAGE_SECRET_ACCESS_KEY: str = ""
    PROJECT_IMAGES_BUCKET: str = "project-images"
    CATALOG_IMAGES_BUCKET: str = "catalog-images"
    BRAND_LOGOS_BUCKET: str = "brand-logos"

    # 猶予期間
    GRACE_PERIOD_DAYS: int = 30
    # 本人によるアカウント削除の完全削除までの日数
    ACCOUNT_DELETION_GRACE_DAYS: int = 15

    # サービス設定
    SITE_URL: str = "http://localhost:8000"
    SITE_NAME: str = "Printgest"
    ALLOWED_ORIGINS: str = "http://localhost:8000,http://localhost:5173"

    # スケジューラ
    SCHEDULER_TOKEN: str = ""
    SCHEDULER_TIMEZONE: str = "Europe/Madrid"

    # 環境
    ENV: str = "development"
    DEBUG: bool = True

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
