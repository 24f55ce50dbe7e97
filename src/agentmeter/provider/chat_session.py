from datetime import datetime
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agentmeter.errors import SourceUnavailableError
from agentmeter.models import Granularity, RawMessage

logger = structlog.get_logger()


class ChatTokens(BaseModel):
    input: "int"
    output: "int"
    cached: "int | None" = None
    thoughts: "int | None" = None
    tool: "int | None" = None
    total: "int | None" = None


class ChatMessage(BaseModel):
    id: "str"
    # ISO-8601
    timestamp: "str"
    # the agent's own replies carry the agent's name here
    type: "str"
    tokens: "ChatTokens | None" = None
    model: "str | None" = None


class ChatSession(BaseModel):
    """
    one chats/session-*.json file as written by the Gemini CLI and
    its Qwen Code fork.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    session_id: "str" = Field(alias="sessionId")
    project_hash: "str" = Field(alias="projectHash")
    start_time: "str" = Field(alias="startTime")
    last_updated: "str" = Field(alias="lastUpdated")
    messages: "list[ChatMessage]"


def _parse_timestamp(value: "str") -> "int | None":
    """
    ISO-8601 to epoch milliseconds; None when unparseable.
    """
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return int(parsed.timestamp() * 1000)


class ChatSessionProvider:
    """
    ChatSessionProvider reads session files laid out as
    <tmp>/<project>/chats/session-*.json. Subclasses name the agent
    and where its tmp directory lives.
    """

    provider_name: "str" = ""
    # value of ChatMessage.type on agent replies
    agent_type: "str" = ""

    def __init__(self, tmp_path: "str | Path") -> "None":
        self._tmp_path = Path(tmp_path).expanduser()

    @property
    def name(self) -> "str":
        return self.provider_name

    @property
    def granularity(self) -> "Granularity":
        return Granularity.PER_MESSAGE

    async def fetch(self) -> "list[RawMessage]":
        try:
            project_dirs = sorted(entry for entry in self._tmp_path.iterdir() if entry.is_dir())
        except OSError as exc:
            raise SourceUnavailableError(
                self.name, f"cannot read tmp path {self._tmp_path}: {exc}"
            ) from exc

        messages: "list[RawMessage]" = []
        for project_dir in project_dirs:
            chats_dir = project_dir / "chats"
            if not chats_dir.is_dir():
                continue
            messages.extend(self._read_chats(chats_dir))

        logger.debug(f"{self.name}_fetch_done", messages=len(messages))
        return messages

    def _read_chats(self, chats_dir: "Path") -> "list[RawMessage]":
        try:
            session_files = sorted(
                entry
                for entry in chats_dir.iterdir()
                if entry.is_file()
                and entry.name.startswith("session-")
                and entry.name.endswith(".json")
            )
        except OSError:
            logger.warning("chats_dir_unreadable", provider=self.name, path=str(chats_dir))
            return []

        messages: "list[RawMessage]" = []
        for session_file in session_files:
            try:
                session = ChatSession.model_validate_json(session_file.read_bytes())
            except (ValidationError, OSError):
                logger.warning(
                    "session_file_invalid", provider=self.name, file=session_file.name
                )
                continue

            messages.extend(self._to_raw(session, message) for message in session.messages)

        return messages

    def _to_raw(self, session: "ChatSession", message: "ChatMessage") -> "RawMessage":
        tokens = message.tokens
        return RawMessage(
            id=message.id,
            session_id=session.session_id,
            provider=self.provider_name,
            role="assistant" if message.type == self.agent_type else message.type,
            model=message.model,
            input_tokens=tokens.input if tokens is not None else None,
            output_tokens=tokens.output if tokens is not None else None,
            reasoning_tokens=(tokens.thoughts or 0) if tokens is not None else 0,
            cache_creation_tokens=0,
            cache_read_tokens=(tokens.cached or 0) if tokens is not None else 0,
            created_at=_parse_timestamp(message.timestamp),
        )


class QwenProvider(ChatSessionProvider):
    provider_name = "qwen"
    agent_type = "qwen"

    def __init__(self, tmp_path: "str | Path" = Path.home() / ".qwen/tmp") -> "None":
        super().__init__(tmp_path)


class GeminiProvider(ChatSessionProvider):
    provider_name = "gemini"
    agent_type = "gemini"

    def __init__(self, tmp_path: "str | Path" = Path.home() / ".gemini/tmp") -> "None":
        super().__init__(tmp_path)
