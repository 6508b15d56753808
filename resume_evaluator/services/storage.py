import os
from io import BytesIO
from werkzeug.utils import secure_filename
from flask import current_app
import boto3
from botocore.client import Config


def _ensure_local_dir():
    d = current_app.config['LOCAL_STORAGE_DIR']
    os.makedirs(d, exist_ok=True)
    return d


def _s3_client():
    # endpoint_url may be empty for AWS-managed S3
    s3_kwargs = {}
    endpoint = current_app.config.get('S3_ENDPOINT')
    if endpoint:
        s3_kwargs['endpoint_url'] = endpoint
    region = current_app.config.get('S3_REGION')
    if region:
        s3_kwargs['region_name'] = region
    s3_config = Config(signature_version='s3v4', s3={'addressing_style': 'virtual'})
    return boto3.client(
        's3',
        aws_access_key_id=current_app.config.get('S3_ACCESS_KEY'),
        aws_secret_access_key=current_app.config.get('S3_SECRET_KEY'),
        config=s3_config,
        **s3_kwargs,
    )


def _save_local(data: bytes, key: str) -> str:
    d = _ensure_local_dir()
    path = os.path.join(d, key)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'wb') as f:
        f.write(data)
    return f"file://{os.path.abspath(path)}"


def save_bytes(data: bytes, filename: str, prefix: str = "", content_type: str = None) -> str:
    """Write ``data`` to the configured backend and return its storage URL."""
    backend = current_app.config.get('STORAGE_BACKEND', 'local')
    filename = secure_filename(filename)
    key = f"{prefix}/{filename}" if prefix else filename

    if backend == 's3':
        s3 = _s3_client()
        bucket = current_app.config.get('S3_BUCKET')
        extra = {'ContentType': content_type} if content_type else None
        try:
            s3.upload_fileobj(BytesIO(data), bucket, key, ExtraArgs=extra)
            return f"s3://{bucket}/{key}"
        except Exception as e:
            # fall back to local storage rather than failing the upload stage
            current_app.logger.exception('S3 upload failed, falling back to local storage: %s', e)
            return _save_local(data, key)
    return _save_local(data, key)


def delete_url(url: str):
    if url.startswith('s3://'):
        bucket, key = url.replace('s3://', '').split('/', 1)
        _s3_client().delete_object(Bucket=bucket, Key=key)
    elif url.startswith('file://'):
        path = url.replace('file://', '')
        if os.path.exists(path):
            os.remove(path)
    else:
        raise ValueError("Unsupported URL scheme")
