"""
Attachment storage.
"""

from .s3 import S3AttachmentStorage, UploadTicket, safe_file_name

__all__ = ["S3AttachmentStorage", "UploadTicket", "safe_file_name"]
