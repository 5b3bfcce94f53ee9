"""
Redis Stream Mock

redis.asyncio 클라이언트의 Stream 관련 명령을 인메모리로 흉내냅니다.
decode_responses=True 클라이언트처럼 문자열을 반환합니다.
"""

import itertools
from typing import Dict, List, Optional, Tuple

from redis.exceptions import DataError, ResponseError


def _parse_id(entry_id: str, upper: bool = False) -> Tuple[int, int]:
    if "-" in entry_id:
        ms, seq = entry_id.split("-", 1)
        return int(ms), int(seq)
    return int(entry_id), (2 ** 63 - 1 if upper else 0)


class MockRedisStreams:
    """
    인메모리 Redis Stream Mock

    Args:
        start_ms: 첫 엔트리 id의 밀리초 값

    장애 시뮬레이션은 fail_next() / fail_command()로 설정합니다.
    """

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.streams: Dict[str, List[Tuple[str, Dict[str, str]]]] = {}
        self.last_ids: Dict[str, Tuple[int, int]] = {}
        self._clock = itertools.count(start_ms)
        self.calls: List[str] = []
        self.failures: List[Exception] = []
        self.command_failures: Dict[str, List[Exception]] = {}
        self.closed = False

    def fail_next(self, *errors: Exception) -> None:
        """다음 명령들에서 순서대로 예외 발생"""
        self.failures.extend(errors)

    def fail_command(self, command: str, *errors: Exception) -> None:
        """특정 명령(예: "XADD")의 다음 호출들에서 순서대로 예외 발생"""
        self.command_failures.setdefault(command, []).extend(errors)

    def _record(self, command: str) -> None:
        self.calls.append(command)
        if self.command_failures.get(command):
            raise self.command_failures[command].pop(0)
        if self.failures:
            raise self.failures.pop(0)

    async def ping(self) -> bool:
        self._record("PING")
        return True

    async def aclose(self) -> None:
        self.closed = True

    async def xadd(self, name: str, fields: Dict[str, str], id: str = "*") -> str:
        if not fields:
            raise DataError("XADD requires at least one field")
        self._record("XADD")

        ms = next(self._clock)
        last = self.last_ids.get(name, (0, -1))
        new_id = (ms, 0) if ms > last[0] else (last[0], last[1] + 1)
        self.last_ids[name] = new_id

        entry_id = f"{new_id[0]}-{new_id[1]}"
        self.streams.setdefault(name, []).append(
            (entry_id, {str(k): str(v) for k, v in fields.items()})
        )
        return entry_id

    async def xrange(self, name: str, min: str = "-", max: str = "+", count: Optional[int] = None):
        self._record("XRANGE")
        low = (0, 0) if min == "-" else _parse_id(min)
        high = (2 ** 63, 0) if max == "+" else _parse_id(max, upper=True)

        result = [
            (entry_id, dict(fields))
            for entry_id, fields in self.streams.get(name, [])
            if low <= _parse_id(entry_id) <= high
        ]
        return result[:count] if count is not None else result

    async def xlen(self, name: str) -> int:
        self._record("XLEN")
        return len(self.streams.get(name, []))

    async def xdel(self, name: str, *ids: str) -> int:
        self._record("XDEL")
        entries = self.streams.get(name, [])
        before = len(entries)
        entries[:] = [entry for entry in entries if entry[0] not in ids]
        return before - len(entries)

    async def exists(self, *names: str) -> int:
        self._record("EXISTS")
        return sum(1 for name in names if name in self.streams)

    async def delete(self, *names: str) -> int:
        self._record("DEL")
        deleted = 0
        for name in names:
            if self.streams.pop(name, None) is not None:
                self.last_ids.pop(name, None)
                deleted += 1
        return deleted

    async def xinfo_stream(self, name: str):
        self._record("XINFO")
        if name not in self.streams:
            raise ResponseError("ERR no such key")

        entries = self.streams[name]
        last = self.last_ids.get(name, (0, 0))
        return {
            "length": len(entries),
            "radix-tree-keys": 1,
            "radix-tree-nodes": 2,
            "last-generated-id": f"{last[0]}-{last[1]}",
            "groups": 0,
            "first-entry": entries[0] if entries else None,
            "last-entry": entries[-1] if entries else None,
        }
