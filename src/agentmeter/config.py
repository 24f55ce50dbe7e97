import os
from dataclasses import dataclass

DEFAULT_DB_PATH = "~/.agentmeter.db"


@dataclass
class Config:
    # SQLite file holding synced records
    db_path: "str" = DEFAULT_DB_PATH
    log_level: "str" = "info"

    opencode_messages_path: "str" = "~/.local/share/opencode/storage/message"
    qwen_tmp_path: "str" = "~/.qwen/tmp"
    gemini_tmp_path: "str" = "~/.gemini/tmp"

    # LiteLLM-format price map fetched at startup; empty disables it
    prices_url: "str" = ""
    # node-exporter textfile written after a sync; empty disables it
    metrics_textfile: "str" = ""

    @classmethod
    def from_env(cls) -> "Config":
        defaults = cls()
        return cls(
            db_path=os.environ.get("AGENTMETER_DB", defaults.db_path),
            opencode_messages_path=os.environ.get(
                "OPENCODE_MESSAGES_PATH", defaults.opencode_messages_path
            ),
            qwen_tmp_path=os.environ.get("QWEN_TMP_PATH", defaults.qwen_tmp_path),
            gemini_tmp_path=os.environ.get("GEMINI_TMP_PATH", defaults.gemini_tmp_path),
            prices_url=os.environ.get("AGENTMETER_PRICES_URL", ""),
            metrics_textfile=os.environ.get("AGENTMETER_METRICS_TEXTFILE", ""),
        )
