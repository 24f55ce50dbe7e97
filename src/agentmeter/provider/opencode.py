from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agentmeter.errors import SourceUnavailableError
from agentmeter.models import Granularity, RawMessage

logger = structlog.get_logger()

DEFAULT_MESSAGES_PATH = Path.home() / ".local/share/opencode/storage/message"


class OpenCodeCache(BaseModel):
    write: "int"
    read: "int"


class OpenCodeTokens(BaseModel):
    input: "int"
    output: "int"
    reasoning: "int | None" = None
    cache: "OpenCodeCache | None" = None


class OpenCodeTime(BaseModel):
    # epoch milliseconds
    created: "int"
    completed: "int | None" = None


class OpenCodeMessage(BaseModel):
    """
    one msg_*.json file of the OpenCode message store.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, protected_namespaces=())

    id: "str"
    role: "str"
    session_id: "str" = Field(alias="sessionID")
    model_id: "str | None" = Field(default=None, alias="modelID")
    provider_id: "str | None" = Field(default=None, alias="providerID")
    tokens: "OpenCodeTokens | None" = None
    cost: "float | None" = None
    time: "OpenCodeTime"


class OpenCodeProvider:
    """
    OpenCodeProvider reads OpenCode's on-disk message store: one
    ses_* directory per session holding one msg_*.json per message.
    Files that fail validation are skipped; an unreadable store
    fails the whole fetch.
    """

    def __init__(self, messages_path: "str | Path" = DEFAULT_MESSAGES_PATH) -> "None":
        self._messages_path = Path(messages_path).expanduser()

    @property
    def name(self) -> "str":
        return "opencode"

    @property
    def granularity(self) -> "Granularity":
        return Granularity.PER_MESSAGE

    async def fetch(self) -> "list[RawMessage]":
        try:
            session_dirs = sorted(
                entry
                for entry in self._messages_path.iterdir()
                if entry.is_dir() and entry.name.startswith("ses_")
            )
        except OSError as exc:
            raise SourceUnavailableError(
                self.name, f"cannot read messages path {self._messages_path}: {exc}"
            ) from exc

        messages: "list[RawMessage]" = []
        for session_dir in session_dirs:
            messages.extend(self._read_session(session_dir))

        logger.debug("opencode_fetch_done", sessions=len(session_dirs), messages=len(messages))
        return messages

    def _read_session(self, session_dir: "Path") -> "list[RawMessage]":
        try:
            message_files = sorted(
                entry
                for entry in session_dir.iterdir()
                if entry.is_file()
                and entry.name.startswith("msg_")
                and entry.name.endswith(".json")
            )
        except OSError:
            logger.warning("opencode_session_unreadable", session=session_dir.name, exc_info=True)
            return []

        messages: "list[RawMessage]" = []
        for message_file in message_files:
            try:
                message = OpenCodeMessage.model_validate_json(message_file.read_bytes())
            except ValidationError:
                logger.debug("opencode_message_invalid", file=message_file.name)
                continue
            except OSError:
                logger.warning(
                    "opencode_message_unreadable", file=message_file.name, exc_info=True
                )
                continue

            messages.append(_to_raw(message))

        return messages


def _to_raw(message: "OpenCodeMessage") -> "RawMessage":
    tokens = message.tokens
    cache = tokens.cache if tokens is not None else None

    return RawMessage(
        id=message.id,
        session_id=message.session_id,
        provider=message.provider_id or "opencode",
        role=message.role,
        model=message.model_id,
        input_tokens=tokens.input if tokens is not None else None,
        output_tokens=tokens.output if tokens is not None else None,
        reasoning_tokens=(tokens.reasoning or 0) if tokens is not None else 0,
        cache_creation_tokens=cache.write if cache is not None else 0,
        cache_read_tokens=cache.read if cache is not None else 0,
        cost=message.cost,
        created_at=message.time.created,
        completed_at=message.time.completed,
    )
