# utils/s3.py
import uuid

import boto3

from giverep.core.config import settings


def _client():
    return boto3.client(
        "s3",
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
        region_name=settings.AWS_REGION,
    )


def upload_image_to_s3(file, folder="project-logos"):
    file_extension = file.filename.rsplit(".", 1)[-1] if "." in file.filename else "png"
    key = f"{folder}/{uuid.uuid4()}.{file_extension}"

    _client().upload_fileobj(
        file.file,
        settings.S3_BUCKET_NAME,
        key,
        ExtraArgs={"ContentType": file.content_type or "image/png"},
    )

    return f"https://{settings.S3_BUCKET_NAME}.s3.{settings.AWS_REGION}.amazonaws.com/{key}"
