#!/usr/bin/python3

''' build a State by walking an existing usb_gadget directory

loading is best-effort: every entry that was listed gets its turn, a gadget
or config whose own scan failed is left out, and every failure is kept on
State.load_errors (State.status is the first one)
'''

import logging
from collections import namedtuple

from path import Path

from usbgadget import codec
from usbgadget.errors import UsbgError, NotFoundError, translate_error
from usbgadget.functions import lookup_function_type
from usbgadget.gadget import State, Gadget, Function, Config, Binding
from usbgadget.tools import UDC_DIR, CONFIGS_DIR, FUNCTIONS_DIR, scandir, bindings_select

_logger = logging.getLogger(__name__)

LoadFailure = namedtuple('LoadFailure', 'path error')


def _fail(state, path, err):
    _logger.error('unable to load %s: %s', path, err)
    state.load_errors.append(LoadFailure(Path(path), err))
    return err

def load_state(path, udc_dir=UDC_DIR):
    ''' raises (with no State) if path itself can't be listed '''
    path = Path(path)
    names = scandir(path)

    state = State(path, udc_dir)
    for name in names:
        gadget = load_gadget(state, name)
        if gadget is not None:
            state._gadgets.append(gadget)
    _logger.debug('loaded %s gadgets from %s (%s errors)',
                  len(state._gadgets), path, len(state.load_errors))
    return state

def load_gadget(state, name):
    gadget = Gadget(state, name)
    gpath = gadget.full_path
    try:
        # UDC bound to, if any
        gadget.udc = codec.read_string(state.path, name, 'UDC')
        fnames = scandir(gpath / FUNCTIONS_DIR)
    except UsbgError as e:
        _fail(state, gpath, e)
        return None

    for fname in fnames:
        gadget._functions.append(load_function(gadget, fname))

    try:
        cnames = scandir(gpath / CONFIGS_DIR)
    except UsbgError as e:
        _fail(state, gpath, e)
        gadget.free()
        return None

    for cname in cnames:
        config = load_config(state, gadget, cname)
        if config is not None:
            gadget._configs.append(config)
    return gadget

def load_function(gadget, name):
    ftype = lookup_function_type(name.split('.', 1)[0])
    return Function(gadget, name, gadget.full_path / FUNCTIONS_DIR, ftype)

def load_config(state, gadget, name):
    ''' a config whose links can't be read is dropped; a link to an unknown
    function is kept (target None) but still counts as a failure
    '''
    config = Config(gadget, name, gadget.full_path / CONFIGS_DIR)
    cpath = config.full_path
    try:
        links = scandir(cpath, bindings_select)
    except UsbgError as e:
        _fail(state, cpath, e)
        return None

    readable = True
    for link in links:
        lpath = cpath / link
        try:
            target = lpath.readlink()
        except OSError as e:
            _fail(state, lpath, translate_error(e, '%s: %s' % (lpath, e.strerror)))
            readable = False
            continue
        # full path to the function dir; only its name matters
        target_name = Path(str(target).rstrip('/')).name
        binding = Binding(config, link, target_name)
        if binding.target is None:
            _fail(state, lpath, NotFoundError(
                '%s -> %s: no function %s in gadget %s' % (lpath, target, target_name, gadget.name)))
        config._bindings.append(binding)

    if not readable:
        config.free()
        return None
    return config
