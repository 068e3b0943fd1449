import base64
import logging
from time import sleep

import requests

from ocr import decode_image, detect_mime_type

SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class ModelClientError(Exception):
    """Lỗi khi gọi Gemini API (mạng, timeout, phản hồi bị chặn hoặc rỗng)."""


class GeminiClient:
    """
    Client dùng chung cho cả tiến trình, tạo một lần khi khởi động app.

    complete() gửi prompt (kèm system prompt và ảnh nếu có) tới endpoint
    generateContent và trả về văn bản thô của model.
    """

    def __init__(self, api_key, model="gemini-1.5-pro",
                 base_url="https://generativelanguage.googleapis.com/v1beta",
                 temperature=0.7, max_output_tokens=8192,
                 safety_threshold="BLOCK_MEDIUM_AND_ABOVE",
                 timeout=30, retries=3, delay=2, session=None):
        if not api_key:
            raise RuntimeError("GEMINI_API_KEY environment variable is not set")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.safety_threshold = safety_threshold
        self.timeout = timeout
        self.retries = max(1, retries)
        self.delay = delay
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config):
        return cls(
            api_key=config.get("GEMINI_API_KEY"),
            model=config["GEMINI_MODEL"],
            base_url=config["GEMINI_BASE_URL"],
            temperature=config["GEMINI_TEMPERATURE"],
            max_output_tokens=config["GEMINI_MAX_OUTPUT_TOKENS"],
            safety_threshold=config["GEMINI_SAFETY_THRESHOLD"],
            timeout=config["GEMINI_TIMEOUT"],
            retries=config["GEMINI_RETRIES"],
        )

    @property
    def url(self):
        return f"{self.base_url}/models/{self.model}:generateContent"

    def build_payload(self, prompt, system_prompt=None, image=None):
        parts = [{"text": prompt}]
        if image is not None:
            content = decode_image(image)
            parts.append({
                "inlineData": {
                    "mimeType": detect_mime_type(content),
                    "data": base64.b64encode(content).decode("utf-8"),
                }
            })
        payload = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
            },
            "safetySettings": [
                {"category": category, "threshold": self.safety_threshold}
                for category in SAFETY_CATEGORIES
            ],
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        return payload

    def _extract_text(self, data):
        candidates = data.get("candidates") or []
        if not candidates:
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            if block_reason:
                raise ModelClientError(f"Prompt blocked by Gemini: {block_reason}")
            raise ModelClientError(f"Unexpected Gemini response format: {data}")
        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
        if not text.strip():
            reason = candidate.get("finishReason", "UNKNOWN")
            raise ModelClientError(f"Gemini returned no text (finishReason={reason})")
        return text

    def complete(self, prompt, system_prompt=None, image=None):
        payload = self.build_payload(prompt, system_prompt=system_prompt, image=image)
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.api_key}

        for attempt in range(self.retries):
            # Backoff delay tăng dần theo số lần thử
            if attempt > 0:
                backoff_time = self.delay * (2 ** (attempt - 1))
                logging.info(f"Retry {attempt}/{self.retries} - Waiting {backoff_time}s before retry...")
                sleep(backoff_time)

            logging.info(f"Calling Gemini API {self.model} (attempt {attempt + 1}/{self.retries})...")
            try:
                response = self.session.post(self.url, headers=headers, json=payload, timeout=self.timeout)
                logging.info(f"Gemini API response status: {response.status_code}")
                if response.status_code in RETRYABLE_STATUS and attempt < self.retries - 1:
                    logging.warning(f"Attempt {attempt + 1}/{self.retries} - Gemini API returned {response.status_code}")
                    continue
                response.raise_for_status()
                return self._extract_text(response.json())
            except requests.exceptions.Timeout as e:
                logging.error(f"Attempt {attempt + 1}/{self.retries} - Timeout error calling Gemini API")
                if attempt == self.retries - 1:
                    raise ModelClientError("Gemini API timed out") from e
            except requests.exceptions.HTTPError as e:
                logging.error(f"Gemini API HTTP error: {str(e)}")
                raise ModelClientError(f"Gemini API error: {str(e)}") from e
            except ValueError as e:
                # response.json() không parse được
                logging.error(f"Invalid JSON from Gemini API: {str(e)}")
                raise ModelClientError("Gemini API returned invalid JSON") from e
            except requests.exceptions.RequestException as e:
                logging.error(f"Attempt {attempt + 1}/{self.retries} - Error calling Gemini API: {str(e)}")
                if attempt == self.retries - 1:
                    raise ModelClientError(f"Failed to reach Gemini API: {str(e)}") from e
        raise ModelClientError(f"Gemini API failed after {self.retries} attempts")
