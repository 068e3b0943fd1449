import threading
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from itertools import count
from typing import Optional


@dataclass(frozen=True)
class Message:
    role: str
    content: str
    action: Optional[str] = None
    image_data: Optional[str] = None
    extracted_text: Optional[str] = None


@dataclass(frozen=True)
class StoredMessage:
    id: int
    role: str
    content: str
    timestamp: datetime
    action: Optional[str] = None
    image_data: Optional[str] = None
    extracted_text: Optional[str] = None

    def to_dict(self):
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        # Giữ tên khóa giống phía client (camelCase)
        data["imageData"] = data.pop("image_data")
        data["extractedText"] = data.pop("extracted_text")
        return data


class MemoryMessageStore:
    """Nhật ký tin nhắn chỉ ghi thêm, lưu trong bộ nhớ, theo thứ tự chèn."""

    ROLES = ("user", "assistant")

    def __init__(self):
        self._messages = []
        self._ids = count(1)
        self._lock = threading.Lock()

    def append(self, message):
        if message.role not in self.ROLES:
            raise ValueError(f"Unknown message role: {message.role}")
        with self._lock:
            stored = StoredMessage(
                id=next(self._ids),
                role=message.role,
                content=message.content,
                timestamp=datetime.now(timezone.utc),
                action=message.action,
                image_data=message.image_data,
                extracted_text=message.extracted_text,
            )
            self._messages.append(stored)
        return stored

    def list(self):
        with self._lock:
            return list(self._messages)

    def __len__(self):
        with self._lock:
            return len(self._messages)
