"""
File Service

Stores documents uploaded through recipient self-service links under the
configured upload folder with secure, collision-free names.
"""

from typing import Tuple
import logging
import os
from datetime import datetime
from werkzeug.utils import secure_filename
from flask import current_app
from errors import ValidationError

logger = logging.getLogger(__name__)

class FileService:
    """Service class for file management operations"""

    ALLOWED_EXTENSIONS = {'pdf', 'png', 'jpg', 'jpeg', 'heic'}
    MAX_FILE_SIZE = 16 * 1024 * 1024  # 16MB

    def allowed_file(self, filename: str) -> bool:
        """Check if file extension is allowed."""
        return '.' in filename and \
               filename.rsplit('.', 1)[1].lower() in self.ALLOWED_EXTENSIONS

    def upload_folder(self, subfolder: str) -> str:
        base = current_app.config.get('UPLOAD_FOLDER') or 'uploads'
        if not os.path.isabs(base):
            base = os.path.join(current_app.root_path, base)
        return os.path.join(base, subfolder)

    def validate_file(self, file) -> int:
        """
        Check name, extension and size of an uploaded file.

        Returns:
            int: file size in bytes
        """
        if not file or not file.filename:
            raise ValidationError("No file provided")

        if not self.allowed_file(file.filename):
            raise ValidationError(
                f"File type not allowed. Allowed types: {', '.join(sorted(self.ALLOWED_EXTENSIONS))}"
            )

        # Check file size
        file.seek(0, 2)  # Seek to end
        file_size = file.tell()
        file.seek(0)  # Seek back to start

        if file_size > self.MAX_FILE_SIZE:
            raise ValidationError(f"File too large. Maximum size: {self.MAX_FILE_SIZE // (1024*1024)}MB")
        return file_size

    def save_uploaded_file(self, file, prefix: str, entity_id: int,
                           subfolder: str = 'documents') -> Tuple[str, str, int]:
        """
        Save an uploaded file with secure naming and organization.

        Args:
            file: Flask uploaded file object
            prefix: Filename prefix (e.g., 'notification')
            entity_id: ID of related record
            subfolder: Subfolder for organization

        Returns:
            tuple: (stored filename, original filename, file size)

        Raises:
            ValidationError: missing file, disallowed type or too large
        """
        file_size = self.validate_file(file)

        # Generate secure filename
        original_filename = secure_filename(file.filename) or 'document'
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S_%f')
        filename = f"{prefix}_{entity_id}_{timestamp}_{original_filename}"

        # Ensure upload directory exists
        upload_folder = self.upload_folder(subfolder)
        os.makedirs(upload_folder, exist_ok=True)

        file.save(os.path.join(upload_folder, filename))

        logger.info(f"File uploaded successfully: {filename}")
        return filename, file.filename, file_size

    def delete_file(self, filename: str, subfolder: str = 'documents') -> bool:
        """
        Delete a stored file, used to discard uploads whose database record failed.

        Returns:
            bool: True if deletion successful
        """
        file_path = os.path.join(self.upload_folder(subfolder), filename)

        if os.path.exists(file_path):
            os.remove(file_path)
            logger.info(f"File deleted: {filename}")
            return True

        logger.warning(f"File not found for deletion: {filename}")
        return False

