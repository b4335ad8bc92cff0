"""Protocol constants for Mirabox / Ajazz stream controllers.

Every command frame starts with the report id, the ``CRT`` magic and two
zero bytes, followed by an ASCII opcode and its parameters::

    [0x00] [C R T] [0x00 0x00] [opcode ...] [params ...] [zero pad]

Frames are padded to ``packet_size + 1`` bytes (report id + packet).
"""

# Report id prepended to every output report
REPORT_ID = 0x00

# Command magic and the two zero bytes that follow it
CMD_MAGIC = b'CRT'
CMD_PREFIX = bytes([REPORT_ID]) + CMD_MAGIC + b'\x00\x00'

# Opcodes
OP_DIS = b'DIS'          # reset / handshake part 1
OP_LIG = b'LIG'          # handshake part 2, or brightness
OP_BAT = b'BAT'          # announce image payload for a key
OP_CLE = b'CLE'          # clear key(s); also carries the DC shutdown half
OP_STP = b'STP'          # commit batch
OP_HAN = b'HAN'          # sleep / second half of shutdown
OP_CONNECT = b'CONNECT'  # keep-alive heartbeat

# CLE parameter meaning "every key"
CLEAR_ALL_KEYS = 0xFF

# Brightness range (percent)
BRIGHTNESS_MIN = 0
BRIGHTNESS_MAX = 100

# BAT carries the payload length in a 16-bit big-endian field
MAX_IMAGE_PAYLOAD = 0xFFFF

# Packet sizes per protocol variant
PACKET_SIZE_V1 = 512
PACKET_SIZE_V2 = 1024

# Image page layout: one leading 0x00 header byte per page
PAGE_HEADER = b'\x00'

# Input reports
INPUT_REPORT_SIZE = 512
INPUT_INDEX_OFFSET = 9
INPUT_STATE_OFFSET = 10
# State reported for every input on single-state (pulse) devices
PULSE_STATE = 0x01
# A blocking input read waits in slices this long, releasing the
# transport between them
BLOCKING_READ_SLICE_S = 0.1

# Watcher defaults
DEFAULT_POLL_INTERVAL_S = 1.0
