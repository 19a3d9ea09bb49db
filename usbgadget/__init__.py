''' usbgadget: USB gadget configfs (usb_gadget) tree model

    state = usbgadget.init()          # walks /sys/kernel/config/usb_gadget
    g = state.create_gadget('g1', GadgetAttrs(idVendor=0x1d6b, idProduct=0x0104))
    acm = g.create_function(FunctionType.ACM, 'GS0')
    c = g.create_config('c.1', strs=ConfigStrs('CDC'))
    c.add_function('acm.GS0', acm)
    g.enable()
'''

import logging

from path import Path

from usbgadget.errors import (
    UsbgError, NotFoundError, NoAccessError, InvalidParamError, DuplicateError,
    IOFailure, NoMemoryError, OtherError,
)
from usbgadget.functions import (
    FunctionType, SerialAttrs, NetAttrs, PhonetAttrs,
    lookup_function_type, function_type_name,
)
from usbgadget.gadget import (
    State, Gadget, Function, Config, Binding,
    GadgetAttrs, GadgetStrs, ConfigAttrs, ConfigStrs,
)
from usbgadget.loader import LoadFailure, load_state
from usbgadget.tools import CONFIGFS_PATH, GADGET_DIR, UDC_DIR, LANG_US_ENG, check_path, get_udcs

_logger = logging.getLogger(__name__)

__version__ = '0.1.0'


def init(configfs_path=CONFIGFS_PATH, udc_dir=UDC_DIR, strict=False):
    ''' load <configfs_path>/usb_gadget into a new State
    a missing/unreadable usb_gadget dir raises; per-entry failures end up on
    state.load_errors, or are raised (first one, with .state set) if strict
    '''
    path = check_path(Path(configfs_path) / GADGET_DIR)
    try:
        state = load_state(path, udc_dir)
    except UsbgError as e:
        _logger.error("couldn't init gadget state: %s", e)
        raise
    if strict and state.status is not None:
        err = state.status
        err.state = state
        raise err
    return state

def cleanup(state):
    state.cleanup()
