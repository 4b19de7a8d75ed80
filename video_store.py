import logging
import mimetypes
import uuid

logger = logging.getLogger(__name__)


class GCSVideoStore:
    """Uploads accepted verification videos to Cloud Storage and returns their gs:// path."""

    def __init__(self, storage_client, bucket_name, prefix="verifications"):
        self.storage_client = storage_client
        self.bucket_name = bucket_name
        self.prefix = prefix

    def __call__(self, item_id, video_bytes, mime_type):
        extension = mimetypes.guess_extension(mime_type or "") or ".mp4"
        blob_name = f"{self.prefix}/{item_id}/{uuid.uuid4().hex}{extension}"
        blob = self.storage_client.bucket(self.bucket_name).blob(blob_name)
        blob.upload_from_string(video_bytes, content_type=mime_type)
        logger.info(f"Stored verification video for item {item_id} at {blob_name}")
        return f"gs://{self.bucket_name}/{blob_name}"
