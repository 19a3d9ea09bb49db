#!/usr/bin/python3

# usb function types known to configfs (SEE: drivers/usb/gadget/function)
# and the attribute records handed in/out for each family of them

from collections import namedtuple
from enum import IntEnum


class FunctionType(IntEnum):
    UNKNOWN = -1
    SERIAL = 0 # gser
    ACM = 1
    OBEX = 2
    ECM = 3
    SUBSET = 4 # geth
    NCM = 5
    EEM = 6
    RNDIS = 7
    PHONET = 8

function_names = {
    FunctionType.SERIAL: 'gser',
    FunctionType.ACM: 'acm',
    FunctionType.OBEX: 'obex',
    FunctionType.ECM: 'ecm',
    FunctionType.SUBSET: 'geth',
    FunctionType.NCM: 'ncm',
    FunctionType.EEM: 'eem',
    FunctionType.RNDIS: 'rndis',
    FunctionType.PHONET: 'phonet',
}
_name_types = dict((n, t) for t, n in function_names.items())

SERIAL_TYPES = frozenset([FunctionType.SERIAL, FunctionType.ACM, FunctionType.OBEX])
NET_TYPES = frozenset([
    FunctionType.ECM, FunctionType.SUBSET, FunctionType.NCM,
    FunctionType.EEM, FunctionType.RNDIS,
])
PHONET_TYPES = frozenset([FunctionType.PHONET])

SerialAttrs = namedtuple('SerialAttrs', 'port_num')
# dev_addr/host_addr: 6 bytes (or "xx:xx:.." strings when writing)
NetAttrs = namedtuple('NetAttrs', 'dev_addr host_addr ifname qmult')
PhonetAttrs = namedtuple('PhonetAttrs', 'ifname')


def lookup_function_type(name):
    ''' type name (text before the first '.' of a function dir) -> FunctionType '''
    if not name:
        return FunctionType.UNKNOWN
    return _name_types.get(name, FunctionType.UNKNOWN)

def function_type_name(ftype):
    ''' FunctionType -> configfs type name (None for UNKNOWN) '''
    return function_names.get(ftype)
