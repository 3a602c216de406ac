"""Protocol constants.

Keep these in one place to avoid stringly-typed message handling.
"""

# Name of the field, present in every entry of a frame, that selects the
# concrete message type.
DISCRIMINATOR = "cmd"

# Close codes, as defined for WebSocket close frames (RFC 6455 section 7.4).
# The zmq transport reuses them so observers see one vocabulary.
NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006
INTERNAL_ERROR = 1011
