# Room hub wire constants (numeric envelope keys and event types)

WIRE_VERSION = 1

# Envelope keys
K_V = 0
K_T = 1
K_ID = 2
K_TS = 3
K_BODY = 6

# Inbound events (client -> hub)
T_LOGIN = 1
T_JOIN_ROOM = 10
T_LEAVE_ROOM = 12
T_SEND_MESSAGE = 20
T_TYPING = 22
T_MESSAGE_READ = 24
T_REACT = 26
T_LOAD_MORE = 28
T_UPLOAD = 50

# Outbound events (hub -> client). Typing and read receipts reuse their
# inbound numbers since the hub relays them.
T_JOINED = 2
T_ONLINE_USERS = 3
T_ROOM_JOINED = 11
T_MESSAGE = 21
T_PRIVATE_MESSAGE = 23
T_REACTION = 27
T_OLDER_MESSAGES = 29
T_NOTIFICATION = 40
T_ERROR = 41
T_UPLOADED = 51
T_RESOURCE_ENVELOPE = 52

EVENT_NAMES: dict[int, str] = {
    T_LOGIN: "login",
    T_JOINED: "joined",
    T_ONLINE_USERS: "onlineUsers",
    T_JOIN_ROOM: "joinRoom",
    T_ROOM_JOINED: "roomJoined",
    T_LEAVE_ROOM: "leaveRoom",
    T_SEND_MESSAGE: "sendMessage",
    T_MESSAGE: "message",
    T_TYPING: "typing",
    T_PRIVATE_MESSAGE: "privateMessage",
    T_MESSAGE_READ: "messageRead",
    T_REACT: "react",
    T_REACTION: "reaction",
    T_LOAD_MORE: "loadMore",
    T_OLDER_MESSAGES: "olderMessages",
    T_NOTIFICATION: "notification",
    T_ERROR: "error",
    T_UPLOAD: "upload",
    T_UPLOADED: "uploaded",
    T_RESOURCE_ENVELOPE: "resourceEnvelope",
}

GLOBAL_ROOM = "global"
PRIVATE_ROOM_PREFIX = "private_"

HISTORY_MAX_MESSAGES = 1000
RECENT_MESSAGES = 50
USERNAME_MAX_CHARS = 32

# RESOURCE_ENVELOPE / UPLOAD body keys
B_RES_ID = "id"
B_RES_SIZE = "size"
B_RES_SHA256 = "sha256"
B_RES_NAME = "name"
