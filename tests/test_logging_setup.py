import logging

from shared.logging.logging_setup import ColoredFormatter, CustomFormatter


def _record(level: int, msg: str, *args, **attrs) -> logging.LogRecord:
    record = logging.LogRecord("rag_chat", level, __file__, 1, msg, args, None)
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


def test_context_is_appended_once_per_handler():
    console = ColoredFormatter(tz_name="UTC", fmt="%(message)s")
    file = CustomFormatter(tz_name="UTC", fmt="%(message)s")
    record = _record(logging.INFO, "Indexed %d chunk(s).", 3, context="document=abc")

    assert console.format(record) == "Indexed 3 chunk(s). [document=abc]"
    assert file.format(record) == "Indexed 3 chunk(s). [document=abc]"
    assert record.msg == "Indexed %d chunk(s)."
    assert record.args == (3,)


def test_level_marker_is_not_repeated():
    console = ColoredFormatter(tz_name="UTC", fmt="%(message)s")
    file = CustomFormatter(tz_name="UTC", fmt="%(message)s")
    record = _record(logging.ERROR, "Delete failed.", context="")

    console.format(record)
    assert file.format(record) == "⛔ Delete failed."


def test_color_is_console_only():
    record = _record(logging.INFO, "ready", context="", color="green")
    assert ColoredFormatter(tz_name="UTC", fmt="%(message)s").format(record) == "\033[32mready\033[0m"
    assert CustomFormatter(tz_name="UTC", fmt="%(message)s").format(record) == "ready"
