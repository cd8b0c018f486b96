"""SSE 流式响应解析。

StreamDecoder 把任意切分的字节块流增量地解析为文本增量（delta）序列：

- 跨块保留未完结的行（carry-over），按换行切分后只处理完整的行。
- 跳过空行与 `data: [DONE]`；`data: ` 之后的内容按单条 JSON 记录解析。
- 单条记录解析失败只记录日志并跳过，不中断整个流。
- 不论正常结束、异常还是调用方提前停止，都会释放底层读取资源。
"""

import codecs
import json
from typing import Any, Callable, Iterable, Iterator, List, Optional, Union

from chat_core.domain.exceptions import StreamParseError
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.translator import CustomTransform

DATA_PREFIX = "data: "
DONE_SENTINEL = "data: [DONE]"

Chunk = Union[bytes, str]


def _dig(data: Any, *path: Union[str, int]) -> Any:
    """按 key/下标逐层取值，任何一层不匹配都返回 None。"""

    cur = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(cur, list) or len(cur) <= key:
                return None
        elif not isinstance(cur, dict):
            return None
        cur = cur[key] if isinstance(key, int) else cur.get(key)
        if cur is None:
            return None
    return cur


def extract_delta(record: Any, request_format: str, transform: Optional[CustomTransform] = None) -> Optional[str]:
    """从一条已解析的流式记录中取出增量文本。"""

    if request_format == "anthropic":
        if not isinstance(record, dict) or record.get("type") != "content_block_delta":
            return None
        content = _dig(record, "delta", "text")
    elif request_format == "google":
        content = _dig(record, "candidates", 0, "content", "parts", 0, "text")
    elif request_format == "custom" and transform is not None and transform.response is not None:
        content = transform.response(record)
    else:
        content = _dig(record, "choices", 0, "delta", "content")
    if isinstance(content, str) and content:
        return content
    return None


class StreamDecoder(Iterator[str]):
    """按格式解析 SSE 字节流的惰性迭代器。

    用法::

        with StreamDecoder(resp.iter_bytes(), "openai", on_close=resp.close) as deltas:
            for text in deltas:
                ...

    - source: 字节块（或已解码字符串块）的可迭代对象。
    - on_close: 释放底层读取资源的回调，保证在每条退出路径上恰好调用一次。
    - errors: 被跳过的畸形记录（StreamParseError），便于调用方统计。
    """

    def __init__(
        self,
        source: Iterable[Chunk],
        request_format: str = "openai",
        transform: Optional[CustomTransform] = None,
        on_close: Optional[Callable[[], None]] = None,
    ):
        self._source = source
        self._format = request_format
        self._transform = transform
        self._on_close = on_close
        self._released = False
        self.errors: List[StreamParseError] = []
        self._deltas = self._decode()

    def __iter__(self) -> "StreamDecoder":
        return self

    def __next__(self) -> str:
        return next(self._deltas)

    def __enter__(self) -> "StreamDecoder":
        return self

    def __exit__(self, *exc) -> bool:
        self.close()
        return False

    def close(self) -> None:
        """提前停止读取。未开始迭代时生成器的 finally 不会执行，因此这里显式释放。"""

        self._deltas.close()
        self._release()

    def _decode(self) -> Iterator[str]:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = ""
        try:
            for chunk in self._source:
                buffer += decoder.decode(chunk) if isinstance(chunk, (bytes, bytearray)) else chunk
                lines = buffer.split("\n")
                buffer = lines.pop()
                for line in lines:
                    delta = self._parse_line(line)
                    if delta:
                        yield delta
            buffer += decoder.decode(b"", final=True)
            # 流结束时最后一行可能没有换行符
            if buffer.strip():
                delta = self._parse_line(buffer)
                if delta:
                    yield delta
        finally:
            self._release()

    def _parse_line(self, line: str) -> Optional[str]:
        line = line.strip()
        if not line or line == DONE_SENTINEL or not line.startswith(DATA_PREFIX):
            return None
        payload = line[len(DATA_PREFIX):]
        try:
            record = json.loads(payload)
        except json.JSONDecodeError as e:
            err = StreamParseError(code="STREAM_PARSE_ERROR", message=str(e), line=line)
            self.errors.append(err)
            logger.warning(
                "Error parsing SSE data",
                extra={"extra": {"format": self._format, "error": err.message, "line": line[:200]}},
            )
            return None
        return extract_delta(record, self._format, self._transform)

    def _release(self) -> None:
        if self._released:
            return
        self._released = True
        close = getattr(self._source, "close", None)
        if callable(close):
            close()
        if self._on_close is not None:
            self._on_close()


def decode_stream(
    source: Iterable[Chunk],
    request_format: str = "openai",
    transform: Optional[CustomTransform] = None,
) -> Iterator[str]:
    """StreamDecoder 的函数式入口，逐个产出增量文本。"""

    with StreamDecoder(source, request_format, transform) as deltas:
        yield from deltas
