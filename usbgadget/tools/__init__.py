#!/usr/bin/python3

# NOTE: there's a ton of ways to manage bits:
#    numpy, BitVector, bitarray, bitstring, numba, plain python...
#    (numpy's already around, so it gets the job)

import os
import errno
import logging

import numpy
from path import Path

from usbgadget.errors import InvalidParamError, translate_error

_logger = logging.getLogger(__name__)

CONFIGFS_PATH = '/sys/kernel/config'
GADGET_DIR = 'usb_gadget'
UDC_DIR = '/sys/class/udc'

STRINGS_DIR = 'strings'
CONFIGS_DIR = 'configs'
FUNCTIONS_DIR = 'functions'

LANG_US_ENG = 0x0409

# buffer limits, checked before touching the store
MAX_NAME_LENGTH = 40
MAX_PATH_LENGTH = 256
MAX_STR_LENGTH = 256


def makedirs(name, mode=0o777, exist_ok=False):
    try:
        os.makedirs(name, mode)
    except OSError as exc:
        if exist_ok and exc.errno == errno.EEXIST and os.path.isdir(name):
            pass
        else:
            raise

def write(data, fname):
    if isinstance(data, str):
        data = data.encode()
    with open(fname, 'wb') as f:
        f.write(data)

def encode_bools(bool_lst):
    ''' pack a list of flags (lsb first) into an int '''
    if not len(bool_lst):
        return 0
    return int(numpy.sum(2**numpy.arange(len(bool_lst))*numpy.array(bool_lst, dtype=int)))

def decode_bools(intval, bits):
    res = []
    for bit in range(bits):
        mask = 1 << bit
        res.append((intval & mask) == mask)
    return res

def check_name(name, what='name'):
    ''' configfs entry names: non-empty, single path component, bounded '''
    if not isinstance(name, str) or not name:
        raise InvalidParamError('%s must be a non-empty string' % what)
    if '/' in name or name in ('.', '..'):
        raise InvalidParamError('invalid %s: %r' % (what, name))
    if len(name) >= MAX_NAME_LENGTH:
        raise InvalidParamError('%s too long (max %s): %r' % (what, MAX_NAME_LENGTH - 1, name))
    return name

def check_path(path):
    if len(path) >= MAX_PATH_LENGTH:
        raise InvalidParamError('path too long (max %s): %s' % (MAX_PATH_LENGTH - 1, path))
    return Path(path)

def scandir(path, select=None):
    ''' sorted entry names of path, optionally filtered by select(Path) '''
    path = Path(path)
    try:
        entries = [p for p in path.iterdir() if select is None or select(p)]
    except OSError as e:
        raise translate_error(e, '%s: %s' % (path, e.strerror)) from e
    return sorted(p.name for p in entries)

def bindings_select(p):
    return os.path.islink(p)

def get_udcs(udc_dir=UDC_DIR):
    ''' names of the available device controllers (sorted) '''
    return scandir(udc_dir)
