import base64
import binascii
import io
import logging
import re

from PIL import Image, UnidentifiedImageError
from google.cloud import vision

DATA_URL_PREFIX = re.compile(r'^data:image/[\w.+-]+;base64,')
WHITESPACE = re.compile(r'\s+')

MIME_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
    "BMP": "image/bmp",
}


def decode_image(data):
    """Nhận bytes hoặc chuỗi base64 (có thể kèm tiền tố data URL), trả về bytes."""
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if not isinstance(data, str):
        raise ValueError(f"Unsupported image data type: {type(data).__name__}")
    cleaned = WHITESPACE.sub("", DATA_URL_PREFIX.sub("", data.strip()))
    if not cleaned:
        raise ValueError("Empty image data")
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 image data: {str(e)}") from e


def detect_mime_type(content):
    try:
        with Image.open(io.BytesIO(content)) as image:
            return MIME_TYPES.get(image.format, "image/jpeg")
    except (UnidentifiedImageError, OSError):
        logging.warning("Could not identify image format, assuming image/jpeg")
        return "image/jpeg"


class VisionOCR:
    """Trích xuất văn bản từ ảnh bằng Google Cloud Vision."""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = vision.ImageAnnotatorClient()
            logging.info("Created Vision API client")
        return self._client

    def extract_text(self, image_data):
        """Trả về văn bản đọc được (đã strip), hoặc chuỗi rỗng nếu không đọc được."""
        try:
            content = decode_image(image_data)
            logging.info(f"Running OCR on {len(content)} bytes")

            response = self.client.text_detection(image=vision.Image(content=content))
            if response.error.message:
                logging.error(f"Vision API error: {response.error.message}")
                return ""

            texts = response.text_annotations
            logging.info(f"Number of text annotations: {len(texts) if texts else 0}")
            if texts:
                return texts[0].description.strip()
            logging.warning("No text found in image.")
            return ""
        except Exception as e:
            logging.error(f"Error extracting text from image: {str(e)}", exc_info=True)
            return ""
