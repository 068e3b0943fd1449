import json
import logging
import re
from dataclasses import dataclass, asdict
from typing import List, Optional

from prompts import GRADES, PRACTICE_COUNTS, SUBJECTS

# Mảng JSON mà object đầu tiên có khóa "question"
STRICT_QUESTION_ARRAY = re.compile(r'\[\s*\{\s*"question"[\s\S]*\}\s*\]')


@dataclass(frozen=True)
class PracticeQuestion:
    question: str
    answer: Optional[str] = None
    explanation: Optional[str] = None

    def to_dict(self):
        return asdict(self)


class ExtractionError(ValueError):
    """Không lấy được danh sách câu hỏi từ phản hồi của model."""

    def __init__(self, message, raw_text):
        super().__init__(message)
        self.raw_text = raw_text


class Unparseable(ExtractionError):
    pass


def _optional_text(value):
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return str(value)


def _coerce_questions(data):
    """Trả về danh sách PracticeQuestion hợp lệ, hoặc None nếu không dùng được."""
    if not isinstance(data, list) or not data:
        return None
    questions = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            logging.warning(f"Skipping practice item {index}: not an object")
            continue
        question = item.get("question")
        if question is None or not str(question).strip():
            logging.warning(f"Skipping practice item {index}: missing question")
            continue
        questions.append(PracticeQuestion(
            question=_optional_text(question),
            answer=_optional_text(item.get("answer")),
            explanation=_optional_text(item.get("explanation")),
        ))
    return questions or None


def _strict_pattern(raw_text):
    match = STRICT_QUESTION_ARRAY.search(raw_text)
    if not match:
        return None
    return match.group(0)


def _bracket_scan(raw_text):
    start = raw_text.find("[")
    end = raw_text.rfind("]")
    if start == -1 or end == -1 or start >= end:
        return None
    return raw_text[start:end + 1]


# Thứ tự thử: mẫu chặt trước, quét ngoặc vuông sau
EXTRACTION_STRATEGIES = [
    ("strict_pattern", _strict_pattern),
    ("bracket_scan", _bracket_scan),
]


def extract_questions(raw_text) -> List[PracticeQuestion]:
    """
    Tìm và parse mảng JSON câu hỏi trong phản hồi tự do của model.

    Mỗi chiến lược trả về một đoạn ứng viên; đoạn đầu tiên parse được thành
    mảng không rỗng các câu hỏi sẽ được dùng. Nếu không chiến lược nào thành
    công thì raise Unparseable kèm nguyên văn phản hồi.
    """
    raw_text = raw_text or ""
    for name, strategy in EXTRACTION_STRATEGIES:
        candidate = strategy(raw_text)
        if candidate is None:
            logging.info(f"Extraction strategy {name}: no candidate")
            continue
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as e:
            logging.warning(f"Extraction strategy {name}: invalid JSON ({e})")
            continue
        questions = _coerce_questions(data)
        if questions:
            logging.info(f"Extraction strategy {name}: {len(questions)} questions")
            return questions
        logging.warning(f"Extraction strategy {name}: parsed value is not a non-empty question list")
    raise Unparseable("Không thể đọc danh sách câu hỏi từ phản hồi của AI.", raw_text)


def validate_practice_request(subject, grade, count):
    """Trả về thông báo lỗi, hoặc None nếu yêu cầu hợp lệ."""
    if subject not in SUBJECTS:
        return f"Môn học không hợp lệ: {subject}"
    if str(grade) not in GRADES:
        return f"Lớp không hợp lệ: {grade}"
    if count not in PRACTICE_COUNTS:
        return f"Số câu hỏi phải là một trong {', '.join(str(c) for c in PRACTICE_COUNTS)}"
    return None


def build_practice_prompt(subject, grade, count, topic=None, include_answers=True):
    topic_line = f"Chủ đề: {topic}\n" if topic else ""
    if include_answers:
        fields = '"question", "answer" và "explanation"'
        example = '[{"question": "...", "answer": "...", "explanation": "..."}]'
    else:
        fields = '"question"'
        example = '[{"question": "..."}]'
    return f"""
Hãy tạo {count} câu hỏi luyện tập môn {subject} lớp {grade} theo chương trình phổ thông Việt Nam.
{topic_line}Yêu cầu:
- Câu hỏi rõ ràng, phù hợp trình độ học sinh lớp {grade}.
- Công thức toán viết bằng LaTeX, đặt trong $...$; trong chuỗi JSON ký tự \\ phải viết thành \\\\.
- Chỉ trả về một mảng JSON, mỗi phần tử có các khóa {fields}.
Ví dụ định dạng: {example}
""".strip()
