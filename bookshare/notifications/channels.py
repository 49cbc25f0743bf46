from enum import Enum


class Channel(str, Enum):
    INAPP_USER = "inapp_user"
    CHAT_SYSTEM = "chat_system"
