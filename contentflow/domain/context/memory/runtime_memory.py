from typing import Dict, List, Any
from datetime import datetime
import asyncio
from collections import defaultdict

from contentflow.domain.interfaces import ConversationHistory, MessageDelivery


class RuntimeMemory(MessageDelivery, ConversationHistory):
    """Per-thread message log; serves as message delivery and history source"""

    def __init__(self, max_messages: int = 100):
        self.max_messages = max_messages
        self.threads: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def post_message(self, thread_id: str, text: str, role: str = "assistant") -> None:
        await self._append(thread_id, role, text)

    async def record_turn(self, thread_id: str, role: str, text: str) -> None:
        await self._append(thread_id, role, text)

    async def _append(self, thread_id: str, role: str, text: str) -> None:
        async with self._lock:
            messages = self.threads[thread_id]
            messages.append({
                "role": role,
                "content": text,
                "timestamp": datetime.utcnow().isoformat(),
            })
            if len(messages) > self.max_messages:
                self.threads[thread_id] = messages[-self.max_messages:]

    async def get_history(self, thread_id: str, limit: int = 20) -> List[Dict[str, str]]:
        async with self._lock:
            messages = self.threads.get(thread_id, [])
            recent = messages[-limit:] if limit else []
            return [{"role": m["role"], "content": m["content"]} for m in recent]

    async def get_messages(self, thread_id: str) -> List[Dict[str, Any]]:
        async with self._lock:
            return [dict(m) for m in self.threads.get(thread_id, [])]

    async def clear_thread(self, thread_id: str) -> None:
        async with self._lock:
            self.threads.pop(thread_id, None)
