# app/services/text.py
BRIEF_LENGTH = 50
_BREAKS = (" ", ",", "،", ".")


def truncate_value(value: str, length: int = BRIEF_LENGTH) -> str:
    """
    取前 length 個字元當摘要：在最後一個空白 / 逗號 / 句點處截斷，
    找不到斷點就硬切。
    """
    if len(value) <= length:
        return value
    head = value[:length]
    cut = max(head.rfind(ch) for ch in _BREAKS)
    if cut <= 0:
        return head
    return head[:cut]
