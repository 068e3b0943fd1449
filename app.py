from flask import Flask, Blueprint, current_app, request, jsonify
import logging

from config import load_config, prepare_google_credentials
from formatting import render
from gemini_client import GeminiClient, ModelClientError
from ocr import VisionOCR, decode_image
from practice import ExtractionError, build_practice_prompt, extract_questions, validate_practice_request
from prompts import DEFAULT_IMAGE_PROMPT, system_prompt_for
from storage import MemoryMessageStore, Message

# Cấu hình logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

api = Blueprint("api", __name__, url_prefix="/api")


def create_app(config=None, model_client=None, ocr=None, store=None):
    """
    Tạo Flask app. Model client, OCR và kho tin nhắn được tạo một lần ở đây
    (hoặc truyền vào khi test) rồi dùng chung cho mọi request.
    """
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    if config:
        app.config.from_mapping(config)
    logging.getLogger().setLevel(app.config["LOG_LEVEL"])

    if ocr is None:
        prepare_google_credentials()
        ocr = VisionOCR()
    app.extensions["study_assistant"] = {
        "model": model_client or GeminiClient.from_config(app.config),
        "ocr": ocr,
        "store": store or MemoryMessageStore(),
    }
    app.register_blueprint(api)
    logging.info(f"Study assistant ready (model: {app.config['GEMINI_MODEL']})")
    return app


def _service(name):
    return current_app.extensions["study_assistant"][name]


def _request_json():
    data = request.get_json(silent=True)
    # Body phải là một JSON object
    return data if isinstance(data, dict) else {}


def _invalid_image(image_data, endpoint):
    """Trả về response 400 nếu ảnh không decode được, ngược lại None."""
    try:
        decode_image(image_data)
    except ValueError as e:
        logging.warning(f"Rejected image in {endpoint} endpoint: {str(e)}")
        return jsonify({"error": "Invalid image data"}), 400
    return None


def _answer(prompt, system_prompt, image=None):
    raw = _service("model").complete(prompt, system_prompt=system_prompt, image=image)
    return render(raw)


def _save_exchange(user_message, answer):
    store = _service("store")
    store.append(user_message)
    return store.append(Message(role="assistant", content=answer))


@api.route("/chat", methods=["POST"])
def chat():
    data = _request_json()
    message = (data.get("message") or "").strip()
    action = data.get("action") or None
    if not message:
        return jsonify({"error": "Message is required"}), 400

    system_prompt = data.get("systemPrompt") or system_prompt_for(action)
    try:
        answer = _answer(message, system_prompt)
    except ModelClientError as e:
        logging.error(f"Error in chat endpoint: {str(e)}")
        return jsonify({"error": "Failed to generate response"}), 500

    saved = _save_exchange(Message(role="user", content=message, action=action), answer)
    return jsonify(saved.to_dict()), 200


@api.route("/image/chat", methods=["POST"])
def image_chat():
    data = _request_json()
    image_data = data.get("imageData")
    user_text = (data.get("userText") or "").strip()
    action = data.get("action") or None
    if not image_data:
        return jsonify({"error": "Image data is required"}), 400
    rejected = _invalid_image(image_data, "image chat")
    if rejected:
        return rejected

    system_prompt = data.get("systemPrompt") or system_prompt_for(action)
    try:
        answer = _answer(user_text or DEFAULT_IMAGE_PROMPT, system_prompt, image=image_data)
    except ModelClientError as e:
        logging.error(f"Error in image chat endpoint: {str(e)}")
        return jsonify({"error": "Failed to process image and generate response"}), 500

    user_message = Message(
        role="user",
        content=user_text or DEFAULT_IMAGE_PROMPT,
        action=action,
        image_data=image_data,
    )
    saved = _save_exchange(user_message, answer)
    return jsonify(saved.to_dict()), 200


@api.route("/ocr", methods=["POST"])
def ocr_chat():
    data = _request_json()
    image_data = data.get("imageData")
    extracted_text = (data.get("extractedText") or "").strip()
    action = data.get("action") or None
    if not image_data and not extracted_text:
        return jsonify({"error": "Image data or extracted text is required"}), 400
    if image_data:
        rejected = _invalid_image(image_data, "OCR")
        if rejected:
            return rejected

    if not extracted_text:
        extracted_text = _service("ocr").extract_text(image_data)
        logging.info(f"Server OCR extracted {len(extracted_text)} characters")

    system_prompt = data.get("systemPrompt") or system_prompt_for(action)
    try:
        if extracted_text:
            answer = _answer(extracted_text, system_prompt)
        else:
            # Không đọc được chữ trong ảnh: gửi thẳng ảnh cho model
            logging.warning("No text extracted from image. Falling back to sending the image to the model.")
            answer = _answer(DEFAULT_IMAGE_PROMPT, system_prompt, image=image_data)
    except ModelClientError as e:
        logging.error(f"Error in OCR endpoint: {str(e)}")
        return jsonify({"error": "Failed to process image and generate response"}), 500

    user_message = Message(
        role="user",
        content=extracted_text or DEFAULT_IMAGE_PROMPT,
        action=action,
        image_data=image_data,
        extracted_text=extracted_text or None,
    )
    saved = _save_exchange(user_message, answer)
    return jsonify(saved.to_dict()), 200


@api.route("/practice", methods=["POST"])
def practice():
    data = _request_json()
    subject = data.get("subject", "Toán")
    grade = str(data.get("grade", "10"))
    topic = (data.get("topic") or "").strip() or None
    include_answers = data.get("includeAnswers", True)
    if not isinstance(include_answers, bool):
        return jsonify({"error": "includeAnswers phải là true hoặc false"}), 400
    try:
        count = int(data.get("count", 3))
    except (TypeError, ValueError):
        return jsonify({"error": "Số câu hỏi không hợp lệ"}), 400

    error = validate_practice_request(subject, grade, count)
    if error:
        return jsonify({"error": error}), 400

    prompt = build_practice_prompt(subject, grade, count, topic=topic, include_answers=include_answers)
    try:
        raw = _service("model").complete(prompt, system_prompt=system_prompt_for(None))
    except ModelClientError as e:
        logging.error(f"Error generating practice questions: {str(e)}")
        return jsonify({"error": "Đã xảy ra lỗi khi tạo câu hỏi."}), 500

    try:
        questions = extract_questions(raw)
    except ExtractionError as e:
        logging.error(f"Could not parse practice questions: {str(e)}\n--- Raw response for debug ---\n{e.raw_text}")
        return jsonify({"error": str(e), "raw": e.raw_text}), 422

    result = []
    for q in questions:
        item = {"question": render(q.question)}
        if include_answers:
            item["answer"] = render(q.answer) if q.answer else None
            item["explanation"] = render(q.explanation) if q.explanation else None
        result.append(item)
    return jsonify({"questions": result}), 200


@api.route("/messages", methods=["GET"])
def messages():
    return jsonify([m.to_dict() for m in _service("store").list()])


if __name__ == "__main__":
    create_app().run(debug=True)
