"""
Prompt hệ thống tiếng Việt cho từng chế độ trả lời của trợ lý học tập.
"""

FULL_SOLUTION = "full_solution"
SHORT_SOLUTION = "short_solution"
HINT = "hint"

ACTIONS = (FULL_SOLUTION, SHORT_SOLUTION, HINT)

DEFAULT_IMAGE_PROMPT = "Vui lòng giải bài tập trong hình ảnh này."

SUBJECTS = (
    "Toán", "Vật lý", "Hóa học", "Sinh học", "Ngữ văn",
    "Lịch sử", "Địa lý", "Tiếng Anh", "Giáo dục công dân",
)

GRADES = tuple(str(g) for g in range(1, 13))

PRACTICE_COUNTS = (3, 5, 7, 10)

BASE_PROMPT = """
Bạn là trợ lý học tập AI dành cho học sinh Việt Nam. Luôn trả lời bằng tiếng Việt, thân thiện và chính xác.
- Viết công thức toán bằng LaTeX, đặt trong $...$ (trong dòng) hoặc $$...$$ (riêng dòng).
- Dùng dấu "-" ở đầu dòng khi liệt kê.
- Cách các đoạn bằng một dòng trống.
""".strip()

ACTION_PROMPTS = {
    FULL_SOLUTION: """
Nhiệm vụ: giải bài tập đầy đủ.
- Nêu rõ dữ kiện và yêu cầu của đề.
- Trình bày lời giải từng bước, giải thích lý do mỗi bước.
- Kết luận đáp án cuối cùng ở dòng riêng.
""",
    SHORT_SOLUTION: """
Nhiệm vụ: giải bài tập rút gọn.
- Chỉ ghi các bước chính và phép tính quan trọng.
- Kết thúc bằng đáp án cuối cùng.
""",
    HINT: """
Nhiệm vụ: gợi ý hướng làm bài.
- Không đưa ra đáp án cuối cùng.
- Gợi ý kiến thức cần dùng và hướng suy nghĩ, tối đa 4 ý.
- Khuyến khích học sinh tự hoàn thành bài.
""",
}


def system_prompt_for(action=None):
    extra = ACTION_PROMPTS.get(action)
    if extra is None:
        return BASE_PROMPT
    return BASE_PROMPT + "\n\n" + extra.strip()
