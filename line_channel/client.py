import logging
from typing import Mapping, Optional, Sequence, Tuple
import requests
from .config import LineConfig

# Setup logger
logger = logging.getLogger(__name__)

# LINE rejects push/reply requests carrying more than 5 message objects
MAX_MESSAGES_PER_REQUEST = 5


def _api_url(config: LineConfig, path: str) -> str:
    return f"{config.API_BASE_URL.rstrip('/')}/message/{path}"


def _headers(config: LineConfig) -> dict:
    return {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {config.CHANNEL_ACCESS_TOKEN}",
    }


def _post(config: LineConfig, path: str, payload: dict, timeout: float) -> Tuple[Mapping, int]:
    resp = None
    try:
        resp = requests.post(
            _api_url(config, path),
            json=payload,
            headers=_headers(config),
            timeout=timeout
        )
        resp.raise_for_status()
        return (resp.json() if resp.content else {}), resp.status_code

    except requests.Timeout:
        logger.error(f"LINE {path} request timed out after {timeout}s")
        return {"status": "error", "message": "Request timed out"}, 408

    except requests.RequestException as e:
        logger.error(f"LINE {path} error: {e}")

        # resp is only set if the server replied (e.g. 400/429)
        if resp is not None:
            try:
                return resp.json(), resp.status_code
            except ValueError:
                return {"status": "error", "message": resp.text[:200]}, resp.status_code
        return {"status": "error", "message": "Failed to send message"}, 500


def push_messages(
    to: str,
    messages: Sequence[Mapping],
    config: Optional[LineConfig] = None,
    timeout: float = 15,
) -> Tuple[Mapping, int]:
    """
    Pushes up to 5 message objects to a LINE user.

    Arguments:
        to (str): The recipient's LINE user id.
        messages: LINE message objects ({"type": "text", ...} / {"type": "sticker", ...}).
        config (LineConfig, optional): Dependency injection for config.
        timeout: Seconds before the request is abandoned.
    """
    cfg = config or LineConfig()

    # Validation
    if not (cfg.CHANNEL_ACCESS_TOKEN and to):
        logger.error("Missing LINE configuration or recipient")
        return {"status": "error", "message": "Missing configuration"}, 500
    if not messages or len(messages) > MAX_MESSAGES_PER_REQUEST:
        return {"status": "error", "message": f"Expected 1-{MAX_MESSAGES_PER_REQUEST} messages, got {len(messages)}"}, 400

    return _post(cfg, "push", {"to": to, "messages": list(messages)}, timeout)


def reply_text(
    reply_token: str,
    text: str,
    config: Optional[LineConfig] = None,
    timeout: float = 15,
) -> Tuple[Mapping, int]:
    """Replies to a webhook event with a single text message."""
    cfg = config or LineConfig()

    if not (cfg.CHANNEL_ACCESS_TOKEN and reply_token):
        logger.error("Missing LINE configuration or reply token")
        return {"status": "error", "message": "Missing configuration"}, 500

    payload = {"replyToken": reply_token, "messages": [{"type": "text", "text": text}]}
    return _post(cfg, "reply", payload, timeout)


class LineChannel:
    """
    Messaging channel bound to one LINE bot.

    Constructed once at process start and handed to the Dispatcher and the
    webhook handler.
    """

    def __init__(self, config: Optional[LineConfig] = None, timeout: float = 10) -> None:
        self.config = config or LineConfig()
        self.timeout = timeout

    def send_batch(self, recipient: str, units: Sequence[Mapping]) -> Tuple[Mapping, int]:
        return push_messages(recipient, units, self.config, timeout=self.timeout)

    def reply(self, reply_token: str, text: str) -> Tuple[Mapping, int]:
        return reply_text(reply_token, text, self.config, timeout=self.timeout)
