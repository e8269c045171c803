from .config import LineConfig
from .client import LineChannel, push_messages, reply_text
from .security import validate_signature
