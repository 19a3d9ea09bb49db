#!/usr/bin/python3

''' configfs attribute codec
attributes live in `<path>/<name>/<attr>`; reads raise classified errors,
writes are fire-and-forget (logged, error returned, never raised)
'''

import logging

from path import Path

from usbgadget.errors import UsbgError, InvalidParamError, OtherError, translate_error
from usbgadget.tools import MAX_STR_LENGTH, encode_bools, decode_bools, write

_logger = logging.getLogger(__name__)

ETHER_LEN = 6

# bmAttributes bits (bit 7 is reserved and must be set)
BM_REMOTE_WAKEUP = 5
BM_SELF_POWERED = 6
BM_RESERVED = 7


def attr_path(path, name, attr):
    p = Path(path)
    if name:
        p = p / name
    return p / attr

# reads

def read_buf(path, name, attr):
    ''' first line of the attribute file (newline included, if any) '''
    p = attr_path(path, name, attr)
    try:
        with open(p, 'r', encoding='utf-8') as f:
            return f.readline(MAX_STR_LENGTH)
    except OSError as e:
        raise translate_error(e, '%s: %s' % (p, e.strerror)) from e
    except UnicodeDecodeError as e:
        raise OtherError('%s: not valid text (%s)' % (p, e.reason)) from e

def read_int(path, name, attr, base):
    buf = read_buf(path, name, attr)
    try:
        return int(buf.strip(), base)
    except ValueError as e:
        raise OtherError('%s: not a base %s integer: %r' % (
            attr_path(path, name, attr), base, buf)) from e

def read_dec(path, name, attr):
    return read_int(path, name, attr, 10)

def read_hex(path, name, attr):
    return read_int(path, name, attr, 16)

def read_string(path, name, attr):
    buf = read_buf(path, name, attr)
    if buf.endswith('\n'):
        buf = buf[:-1]
    return buf

def read_string_or_empty(path, name, attr):
    try:
        return read_string(path, name, attr)
    except UsbgError as e:
        _logger.debug('%s unreadable (%s); using empty string', attr_path(path, name, attr), e)
        return ''

def parse_ether(text):
    ''' "2:0:0:0:0:1" / "02:00:00:00:00:01" -> 6 bytes (None if malformed) '''
    parts = text.strip().split(':')
    if len(parts) != ETHER_LEN:
        return None
    octets = []
    for part in parts:
        if not 1 <= len(part) <= 2:
            return None
        try:
            octets.append(int(part, 16))
        except ValueError:
            return None
    return bytes(octets)

def format_ether(addr):
    ''' ether_ntoa style: lowercase, no zero padding '''
    if isinstance(addr, str):
        parsed = parse_ether(addr)
        if parsed is None:
            raise InvalidParamError('invalid MAC address: %r' % addr)
        addr = parsed
    addr = bytes(addr)
    if len(addr) != ETHER_LEN:
        raise InvalidParamError('MAC address must be %s bytes' % ETHER_LEN)
    return ':'.join('%x' % b for b in addr)

def read_ether(path, name, attr):
    return parse_ether(read_string(path, name, attr))

# writes

def write_buf(path, name, attr, buf):
    p = attr_path(path, name, attr)
    try:
        write(buf, p)
    except OSError as e:
        err = translate_error(e, '%s: %s' % (p, e.strerror))
        _logger.error('write error: %s', err)
        return err
    return None

def _check_int(value, bits=None):
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParamError('integer expected, got %r' % (value,))
    if bits is not None and not 0 <= value < (1 << bits):
        raise InvalidParamError('%s does not fit in %s bits' % (value, bits))
    return value

def fmt_dec(value):
    return '%d\n' % _check_int(value)

def fmt_hex16(value):
    return '0x%04x\n' % _check_int(value, 16)

def fmt_hex8(value):
    return '0x%02x\n' % _check_int(value, 8)

def fmt_string(value):
    if not isinstance(value, str):
        raise InvalidParamError('string expected, got %r' % (value,))
    return value

def write_dec(path, name, attr, value):
    return write_buf(path, name, attr, fmt_dec(value))

def write_hex16(path, name, attr, value):
    return write_buf(path, name, attr, fmt_hex16(value))

def write_hex8(path, name, attr, value):
    return write_buf(path, name, attr, fmt_hex8(value))

def write_string(path, name, attr, value):
    return write_buf(path, name, attr, fmt_string(value))

def write_ether(path, name, attr, addr):
    return write_buf(path, name, attr, format_ether(addr))

def format_fields(fields):
    ''' [(formatter, attr, value), ...] -> [(attr, buf), ...]
    raises InvalidParamError on the first bad value, before any I/O
    '''
    return [(attr, fmt(value)) for fmt, attr, value in fields]

def write_bufs(path, name, bufs):
    ''' write preformatted [(attr, buf), ...] in order
    returns {attr: error} for the fields that failed, earlier writes stay put
    '''
    failed = {}
    for attr, buf in bufs:
        err = write_buf(path, name, attr, buf)
        if err is not None:
            failed[attr] = err
    return failed

def write_fields(path, name, fields):
    ''' write [(formatter, attr, value), ...]; every value is validated first '''
    return write_bufs(path, name, format_fields(fields))

# config bmAttributes

def bm_attributes(self_powered=False, remote_wakeup=False):
    flags = [False] * 8
    flags[BM_REMOTE_WAKEUP] = bool(remote_wakeup)
    flags[BM_SELF_POWERED] = bool(self_powered)
    flags[BM_RESERVED] = True
    return encode_bools(flags)

def decode_bm_attributes(value):
    ''' -> (self_powered, remote_wakeup) '''
    flags = decode_bools(value, 8)
    return flags[BM_SELF_POWERED], flags[BM_REMOTE_WAKEUP]
