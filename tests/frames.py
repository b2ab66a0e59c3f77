"""Sample frames shared by the test modules"""
import struct

# Terminal registration captured from a GS22 terminal
REGISTRATION_HEX = (
    "7e0100002d0480500221711c7a0000000037303131325345472d393838384700000000000000"
    "0000000030303232313731003530303232313731f67e"
)

DEVICE_ID = "13912345678"


def location_body(status=0x06, extras=bytes.fromhex("010400000064")):
    """South latitude, fixed position, one mileage item"""
    body = struct.pack('>IIIIHHH', 0, status, 22543210, 114012345, 50, 605, 90)
    body += bytes.fromhex("230615103000")
    return body + extras
