"""Protocol layer: API framing, typed frames, AT commands, ZDO and ZCL payloads."""

from .framing import build_api_frame, FrameReader
from .frames import FrameType, decode_frame, encode_frame
