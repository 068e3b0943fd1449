import base64
import io
import json
import os
import unittest
from unittest.mock import MagicMock, patch

from PIL import Image

from config import load_config, prepare_google_credentials
from ocr import VisionOCR, decode_image, detect_mime_type
from prompts import BASE_PROMPT, FULL_SOLUTION, SHORT_SOLUTION, system_prompt_for
from storage import MemoryMessageStore, Message


def _jpeg_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), "black").save(buffer, format="JPEG")
    return buffer.getvalue()


class TestMessageStore(unittest.TestCase):
    def test_append_assigns_ids_in_order(self):
        store = MemoryMessageStore()
        first = store.append(Message(role="user", content="Câu 1", action=FULL_SOLUTION))
        second = store.append(Message(role="assistant", content="<p>Đáp án</p>"))
        self.assertEqual((first.id, second.id), (1, 2))
        self.assertEqual(store.list(), [first, second])
        self.assertLessEqual(first.timestamp, second.timestamp)

    def test_to_dict_uses_client_keys(self):
        store = MemoryMessageStore()
        stored = store.append(Message(role="user", content="x", image_data="abc", extracted_text="y"))
        data = stored.to_dict()
        self.assertEqual(data["imageData"], "abc")
        self.assertEqual(data["extractedText"], "y")
        self.assertNotIn("image_data", data)
        self.assertIsInstance(data["timestamp"], str)

    def test_rejects_unknown_role(self):
        with self.assertRaises(ValueError):
            MemoryMessageStore().append(Message(role="system", content="x"))

    def test_list_is_a_copy(self):
        store = MemoryMessageStore()
        store.append(Message(role="user", content="x"))
        store.list().clear()
        self.assertEqual(len(store), 1)


class TestOCR(unittest.TestCase):
    def test_decode_image_accepts_data_url_and_bytes(self):
        raw = _jpeg_bytes()
        encoded = "data:image/jpeg;base64," + base64.b64encode(raw).decode("utf-8")
        self.assertEqual(decode_image(encoded), raw)
        self.assertEqual(decode_image(raw), raw)

    def test_decode_image_ignores_whitespace(self):
        raw = _jpeg_bytes()
        encoded = base64.b64encode(raw).decode("utf-8")
        wrapped = "\n".join(encoded[i:i + 16] for i in range(0, len(encoded), 16))
        self.assertEqual(decode_image(wrapped), raw)

    def test_decode_image_rejects_junk(self):
        for bad in ["@@@", "abc$def", "", None, 42, {"data": "abc"}]:
            with self.assertRaises(ValueError):
                decode_image(bad)

    def test_detect_mime_type(self):
        self.assertEqual(detect_mime_type(_jpeg_bytes()), "image/jpeg")
        self.assertEqual(detect_mime_type(b"not an image"), "image/jpeg")

    def test_extract_text(self):
        client = MagicMock()
        annotation = MagicMock()
        annotation.description = "  Câu 1. 2 + 2 = ?\n"
        response = MagicMock()
        response.error.message = ""
        response.text_annotations = [annotation]
        client.text_detection.return_value = response

        ocr = VisionOCR(client=client)
        self.assertEqual(ocr.extract_text(_jpeg_bytes()), "Câu 1. 2 + 2 = ?")
        client.text_detection.assert_called_once()

    def test_extract_text_no_annotations(self):
        client = MagicMock()
        client.text_detection.return_value.error.message = ""
        client.text_detection.return_value.text_annotations = []
        self.assertEqual(VisionOCR(client=client).extract_text(_jpeg_bytes()), "")

    def test_extract_text_errors_are_swallowed(self):
        client = MagicMock()
        client.text_detection.side_effect = RuntimeError("quota")
        self.assertEqual(VisionOCR(client=client).extract_text(_jpeg_bytes()), "")

    def test_extract_text_api_error(self):
        client = MagicMock()
        client.text_detection.return_value.error.message = "Bad image data"
        self.assertEqual(VisionOCR(client=client).extract_text(_jpeg_bytes()), "")

    @patch("ocr.vision.ImageAnnotatorClient")
    def test_client_created_once(self, mock_client_cls):
        ocr = VisionOCR()
        self.assertIs(ocr.client, ocr.client)
        mock_client_cls.assert_called_once_with()


class TestConfig(unittest.TestCase):
    def test_defaults(self):
        config = load_config({})
        self.assertIsNone(config["GEMINI_API_KEY"])
        self.assertEqual(config["GEMINI_MODEL"], "gemini-1.5-pro")
        self.assertEqual(config["GEMINI_TEMPERATURE"], 0.7)
        self.assertEqual(config["MAX_CONTENT_LENGTH"], 5 * 1024 * 1024)

    def test_overrides(self):
        config = load_config({"GEMINI_MAX_OUTPUT_TOKENS": "1024", "LOG_LEVEL": "debug"})
        self.assertEqual(config["GEMINI_MAX_OUTPUT_TOKENS"], 1024)
        self.assertEqual(config["LOG_LEVEL"], "DEBUG")

    def test_inline_json_credentials_written_to_file(self):
        environ = {"GOOGLE_APPLICATION_CREDENTIALS": json.dumps({"type": "service_account"})}
        path = prepare_google_credentials(environ)
        try:
            self.assertEqual(environ["GOOGLE_APPLICATION_CREDENTIALS"], path)
            with open(path, encoding="utf-8") as f:
                self.assertEqual(json.load(f), {"type": "service_account"})
        finally:
            os.remove(path)

    def test_credentials_path_unchanged(self):
        environ = {"GOOGLE_APPLICATION_CREDENTIALS": "/secrets/key.json"}
        self.assertEqual(prepare_google_credentials(environ), "/secrets/key.json")
        self.assertIsNone(prepare_google_credentials({}))


class TestPrompts(unittest.TestCase):
    def test_action_prompts(self):
        self.assertEqual(system_prompt_for(None), BASE_PROMPT)
        self.assertEqual(system_prompt_for("unknown"), BASE_PROMPT)
        self.assertIn("rút gọn", system_prompt_for(SHORT_SOLUTION))
        self.assertTrue(system_prompt_for(FULL_SOLUTION).startswith(BASE_PROMPT))


if __name__ == '__main__':
    unittest.main()
