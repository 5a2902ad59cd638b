import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

from contentflow.domain.interfaces import ModelClient, ProfileStore, SemanticSearchService


class ScriptedModelClient(ModelClient):
    """Returns queued replies in order, or asks a responder callable"""

    def __init__(self, replies: Optional[List[Any]] = None, responder: Optional[Callable[[str, str], Any]] = None):
        self.replies = list(replies or [])
        self.responder = responder
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, system_instructions, user_input, conversation_history=None):
        self.calls.append({
            "instructions": system_instructions,
            "user_input": user_input,
            "history": list(conversation_history or []),
        })
        await asyncio.sleep(0)

        if self.responder is not None:
            reply = self.responder(system_instructions, user_input)
        elif self.replies:
            reply = self.replies.pop(0)
        else:
            raise RuntimeError("no scripted reply left")

        if isinstance(reply, Exception):
            raise reply
        return reply


class FailingSearch(SemanticSearchService):
    async def search(self, user_id, org_id, query, content_types, max_security_level, limit=10, scope=None):
        raise ConnectionError("search backend down")


class FailingProfileStore(ProfileStore):
    async def get_profile(self, user_id, org_id):
        raise ConnectionError("profile backend down")

    async def upsert_profile(self, profile):
        raise ConnectionError("profile backend down")


def dialog_reply(**fields) -> str:
    return json.dumps(fields)


def content_responder(asset: str = "Acme unveils its new robot line.", company: str = "Acme"):
    """Completes collection at once, generates ``asset`` and approves the review"""

    def respond(instructions: str, user_input: str) -> str:
        if "Write the complete" in instructions:
            return asset
        if "reviewing the generated" in instructions:
            return dialog_reply(reviewDecision="approved", conversationalResponse="Glad you like it!")
        return dialog_reply(
            isComplete=True,
            collectedInformation={
                "companyInfo": {"name": company, "industry": "Robotics"},
                "topic": "new robot line",
                "tone": "upbeat",
            },
        )

    return respond
