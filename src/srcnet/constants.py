from __future__ import annotations

CONNECTIONLESS_HEADER = -1

# connectionless type codes
C2S_QUERY = ord("q")
C2S_CONNECT = ord("k")
S2C_CHALLENGE = ord("A")
S2C_CONNECTION = ord("B")
S2C_CONNREJECT = ord("9")

# connection-scoped message types
NETMSG_TYPE_BITS = 6
NET_DISCONNECT = 1
NET_STRING_CMD = 4
NET_SIGNON_STATE = 6

SIGNONSTATE_CONNECTED = 2
STRING_CMD_BITS = 4

PROTOCOL_VERSION = 24
AUTH_PROTOCOL_STEAM = 3
STEAM_ID_LEN = 8

QUERY_PADDING = "0000000000"
MAX_REASON_LEN = 1024
SCRATCH_BUFFER_SIZE = 2048

DEFAULT_PORT = 27015
DEFAULT_TIMEOUT_MS = 250
DEFAULT_WAIT_S = 10.0
