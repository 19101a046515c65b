"""オブジェクトストレージ (S3互換) 操作サービス"""
from functools import lru_cache
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from printgest.core.config import settings
from printgest.core.logging import get_logger

logger = get_logger(__name__)

# 削除対象が既に存在しない場合のエラーコード (冪等扱い)
_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


@lru_cache(maxsize=1)
def _get_client():
    config = Config(
        region_name=settings.STORAGE_REGION,
        signature_version="s3v4",
        retries={"max_attempts": 3, "mode": "standard"},
        connect_timeout=10,
        read_timeout=30,
    )
    params = {"config": config}
    if settings.STORAGE_ENDPOINT_URL:
        params["endpoint_url"] = settings.STORAGE_ENDPOINT_URL
    if settings.STORAGE_ACCESS_KEY_ID:
        params["aws_access_key_id"] = settings.STORAGE_ACCESS_KEY_ID
        params["aws_secret_access_key"] = settings.STORAGE_SECRET_ACCESS_KEY
    return boto3.client("s3", **params)


def object_key_from_url(url: Optional[str]) -> Optional[str]:
    """公開URLからオブジェクトキー (末尾パス要素) を取り出す"""
    if not url:
        return None
    key = url.split("?", 1)[0].rstrip("/").split("/")[-1]
    return key or None


def delete_object(bucket: str, key: str) -> bool:
    """オブジェクト削除。存在しない場合も成功扱い (Falseを返す)

    その他のエラーは ClientError のまま送出する。
    """
    try:
        _get_client().delete_object(Bucket=bucket, Key=key)
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code", "")
        if code in _MISSING_CODES:
            logger.debug(f"削除対象なし: s3://{bucket}/{key}")
            return False
        logger.error(f"オブジェクト削除失敗: s3://{bucket}/{key} - {e}")
        raise
    logger.info(f"オブジェクト削除: s3://{bucket}/{key}")
    return True
