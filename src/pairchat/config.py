"""
Client configuration.

Read from ~/.pairchat/config.json; PAIRCHAT_* environment variables win
over the file, explicit constructor arguments win over both.
"""

import json
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from pairchat.participants import ParticipantRegistry
from pairchat.read_tracker import DEFAULT_VISIBILITY_THRESHOLD
from pairchat.replies import DEFAULT_SNIPPET_LENGTH

CONFIG_FILE = Path.home() / ".pairchat" / "config.json"

ENV_OVERRIDES = {
    "PAIRCHAT_BASE_URL": "base_url",
    "PAIRCHAT_API_KEY": "api_key",
    "PAIRCHAT_PARTICIPANT": "participant",
}


class ChatConfig(BaseModel):
    base_url: str = ""
    api_key: Optional[str] = None
    participant: str = ""
    # identity -> avatar url (None for the generated fallback)
    participants: dict[str, Optional[str]] = Field(default_factory=dict)
    table: str = "messages"
    bucket: str = "chat-uploads"
    read_threshold: float = DEFAULT_VISIBILITY_THRESHOLD
    snippet_length: int = DEFAULT_SNIPPET_LENGTH
    ready_timeout: float = 15.0

    def registry(self) -> ParticipantRegistry:
        avatars = dict(self.participants)
        if self.participant and self.participant not in avatars:
            avatars[self.participant] = None
        return ParticipantRegistry.from_mapping(avatars)


def _read_file(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text())
    except (FileNotFoundError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def load_config(path: Path = CONFIG_FILE, **overrides: Any) -> ChatConfig:
    data = _read_file(path)
    for env, field in ENV_OVERRIDES.items():
        value = os.environ.get(env)
        if value:
            data[field] = value
    data.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return ChatConfig.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid pairchat config in {path}: {e}") from e


def save_config(cfg: ChatConfig, path: Path = CONFIG_FILE) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cfg.model_dump(exclude={"api_key"}), indent=2))
