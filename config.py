import json
import logging
import os
import tempfile

DEFAULTS = {
    "GEMINI_MODEL": "gemini-1.5-pro",
    "GEMINI_BASE_URL": "https://generativelanguage.googleapis.com/v1beta",
    "GEMINI_TEMPERATURE": 0.7,
    "GEMINI_MAX_OUTPUT_TOKENS": 8192,
    "GEMINI_SAFETY_THRESHOLD": "BLOCK_MEDIUM_AND_ABOVE",
    "GEMINI_TIMEOUT": 30,
    "GEMINI_RETRIES": 3,
    "MAX_CONTENT_LENGTH": 5 * 1024 * 1024,  # Giới hạn request 5MB
    "LOG_LEVEL": "INFO",
}


def load_config(environ=None):
    """Đọc cấu hình từ biến môi trường, dùng giá trị mặc định nếu thiếu."""
    environ = os.environ if environ is None else environ
    return {
        "SECRET_KEY": environ.get("SECRET_KEY", "dev-secret-key"),
        "GEMINI_API_KEY": environ.get("GEMINI_API_KEY"),
        "GEMINI_MODEL": environ.get("GEMINI_MODEL", DEFAULTS["GEMINI_MODEL"]),
        "GEMINI_BASE_URL": environ.get("GEMINI_BASE_URL", DEFAULTS["GEMINI_BASE_URL"]),
        "GEMINI_TEMPERATURE": float(environ.get("GEMINI_TEMPERATURE", DEFAULTS["GEMINI_TEMPERATURE"])),
        "GEMINI_MAX_OUTPUT_TOKENS": int(environ.get("GEMINI_MAX_OUTPUT_TOKENS", DEFAULTS["GEMINI_MAX_OUTPUT_TOKENS"])),
        "GEMINI_SAFETY_THRESHOLD": environ.get("GEMINI_SAFETY_THRESHOLD", DEFAULTS["GEMINI_SAFETY_THRESHOLD"]),
        "GEMINI_TIMEOUT": float(environ.get("GEMINI_TIMEOUT", DEFAULTS["GEMINI_TIMEOUT"])),
        "GEMINI_RETRIES": int(environ.get("GEMINI_RETRIES", DEFAULTS["GEMINI_RETRIES"])),
        "MAX_CONTENT_LENGTH": int(environ.get("MAX_CONTENT_LENGTH", DEFAULTS["MAX_CONTENT_LENGTH"])),
        "LOG_LEVEL": environ.get("LOG_LEVEL", DEFAULTS["LOG_LEVEL"]).upper(),
    }


def prepare_google_credentials(environ=None):
    """
    GOOGLE_APPLICATION_CREDENTIALS có thể chứa trực tiếp nội dung JSON (ví dụ trên
    các nền tảng deploy chỉ cho phép biến môi trường). Khi đó ghi ra file tạm và
    trỏ biến môi trường về file đó. Trả về đường dẫn file credentials đang dùng.
    """
    environ = os.environ if environ is None else environ
    value = environ.get("GOOGLE_APPLICATION_CREDENTIALS", "")
    if not value.startswith("{"):
        logging.info(f"Using GOOGLE_APPLICATION_CREDENTIALS as file path: {value or None}")
        return value or None
    try:
        creds_content = json.loads(value)
    except json.JSONDecodeError as e:
        logging.error(f"GOOGLE_APPLICATION_CREDENTIALS is not valid JSON: {str(e)}")
        return None
    with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as temp_file:
        json.dump(creds_content, temp_file)
        temp_file_path = temp_file.name
    environ["GOOGLE_APPLICATION_CREDENTIALS"] = temp_file_path
    logging.info(f"Temporary credentials file created at: {temp_file_path}")
    return temp_file_path
