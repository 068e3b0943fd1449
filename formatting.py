import re

# Giới hạn số dòng trống liên tiếp
EXCESS_NEWLINES = re.compile(r'\n{4,}')

# $$...$$ được thử trước $...$ ở cùng vị trí
DOLLAR_MATH = re.compile(r'\$\$([^$]+)\$\$|\$([^$]+)\$')

# Các đoạn đã là công thức: \( ... \) hoặc \[ ... \]
MATH_SPAN = re.compile(r'(\\\(.*?\\\)|\\\[.*?\\\])', re.DOTALL)

MATH_WORDS = re.compile(r'\b(sin|cos|tan|log|ln|π|theta|alpha|beta|gamma|delta)\b')

BULLET_LINE = re.compile(r'^\s*[*-][ \t]+(.*)$')

PARAGRAPH_BREAK = re.compile(r'\n{2,}')

BLOCK_TAG = re.compile(r'^<(p|ul|ol|li|div|h[1-6]|table|blockquote|pre|hr)\b', re.IGNORECASE)


def _dollar_to_delimiters(match):
    if match.group(1) is not None:
        return "\\[" + match.group(1) + "\\]"
    return "\\(" + match.group(2) + "\\)"


def normalize(text):
    """
    Chuẩn hóa văn bản thô từ model:
    - Thu gọn 4+ dòng xuống dòng liên tiếp còn 3.
    - Đổi $$...$$ thành \\[...\\] và $...$ thành \\(...\\) cho MathJax.
    - Bọc tên hàm / ký hiệu toán học đứng riêng (sin, cos, π, alpha...) trong \\(...\\).
    Chạy lại trên kết quả không làm thay đổi gì.
    """
    if not text:
        return ""
    processed = EXCESS_NEWLINES.sub("\n\n\n", text)
    # $ chỉ được ghép cặp ở phần nằm ngoài công thức đã có
    parts = MATH_SPAN.split(processed)
    for i in range(0, len(parts), 2):
        parts[i] = DOLLAR_MATH.sub(_dollar_to_delimiters, parts[i])
    processed = "".join(parts)

    # Chỉ bọc ký hiệu ở phần văn bản nằm ngoài công thức
    parts = MATH_SPAN.split(processed)
    for i in range(0, len(parts), 2):
        parts[i] = MATH_WORDS.sub(r'\\(\1\\)', parts[i])
    return "".join(parts)


def _list_block(items):
    return "<ul>\n" + "\n".join(f"<li>{item}</li>" for item in items) + "\n</ul>"


def convert_lists(text):
    """Gộp mỗi dãy dòng gạch đầu dòng (* hoặc -) liền nhau thành một khối <ul>."""
    if not text:
        return ""
    output = []
    items = []
    gap_needed = False

    def flush():
        nonlocal gap_needed
        if not items:
            return
        if output and output[-1].strip():
            output.append("")
        output.append(_list_block(items))
        items.clear()
        gap_needed = True

    for line in text.split("\n"):
        match = BULLET_LINE.match(line)
        if match:
            items.append(match.group(1))
            continue
        flush()
        if gap_needed and line.strip():
            output.append("")
        gap_needed = False
        output.append(line)
    flush()
    return "\n".join(output)


def wrap_paragraphs(text):
    """
    Tách văn bản theo dòng trống, bọc mỗi đoạn chưa phải thẻ khối trong <p>.
    Đoạn đã bắt đầu bằng thẻ khối (<ul>, <div>, <h2>, <table>, <p>...) giữ nguyên.
    """
    paragraphs = []
    for para in PARAGRAPH_BREAK.split(text or ""):
        para = para.strip("\n")
        if not para.strip():
            continue
        if BLOCK_TAG.match(para.strip()):
            paragraphs.append(para)
        else:
            paragraphs.append("<p>" + para.replace("\n", "<br>") + "</p>")
    return "\n\n".join(paragraphs)


def render(raw_text):
    # Thứ tự cố định: chuẩn hóa -> danh sách -> đoạn văn
    return wrap_paragraphs(convert_lists(normalize(raw_text)))
