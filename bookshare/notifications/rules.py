from bookshare.notifications.events import TrustEvent
from bookshare.notifications.channels import Channel


NOTIFICATION_RULES = {

    TrustEvent.CANCELLATION_REQUESTED: {
        Channel.INAPP_USER: True,
        Channel.CHAT_SYSTEM: True,
    },

    TrustEvent.CANCELLATION_APPROVED: {
        Channel.INAPP_USER: True,
        Channel.CHAT_SYSTEM: True,
    },

    TrustEvent.CANCELLATION_REJECTED: {
        Channel.INAPP_USER: True,
        Channel.CHAT_SYSTEM: True,
    },

    TrustEvent.CANCELLATION_AUTO_APPROVED: {
        Channel.INAPP_USER: True,
        Channel.CHAT_SYSTEM: True,
    },

    TrustEvent.CANCELLATION_EXPIRED: {
        Channel.INAPP_USER: True,
    },

    TrustEvent.REPORT_PENALTY: {
        Channel.INAPP_USER: True,
    },

    TrustEvent.REPORT_VIOLATION: {
        Channel.INAPP_USER: True,
    },

    TrustEvent.APPEAL_RESOLVED: {
        Channel.INAPP_USER: True,
    },
}
