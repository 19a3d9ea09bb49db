#!/usr/bin/python3

# in-memory mirror of <configfs>/usb_gadget
#   State -> Gadget -> {Function, Config -> Binding}
# every collection is kept sorted by name, like the directory listing it mirrors
# NOTE: nothing here is thread-safe; one State per process/thread

import logging
import os
from collections import namedtuple

from path import Path

from usbgadget import codec
from usbgadget.codec import fmt_dec, fmt_hex8, fmt_hex16, fmt_string, format_ether
from usbgadget.errors import (
    InvalidParamError, DuplicateError, NotFoundError, translate_error,
)
from usbgadget.functions import (
    FunctionType, SerialAttrs, NetAttrs, PhonetAttrs,
    SERIAL_TYPES, NET_TYPES, PHONET_TYPES, function_type_name,
)
from usbgadget.tools import (
    UDC_DIR, STRINGS_DIR, CONFIGS_DIR, FUNCTIONS_DIR, LANG_US_ENG,
    check_name, check_path, makedirs, get_udcs,
)

_logger = logging.getLogger(__name__)

GadgetAttrs = namedtuple('GadgetAttrs', [
    'bcdUSB', 'bDeviceClass', 'bDeviceSubClass', 'bDeviceProtocol',
    'bMaxPacketSize0', 'idVendor', 'idProduct', 'bcdDevice',
])
GadgetStrs = namedtuple('GadgetStrs', 'serialnumber manufacturer product')
ConfigAttrs = namedtuple('ConfigAttrs', 'bMaxPower bmAttributes')
ConfigStrs = namedtuple('ConfigStrs', 'configuration')

# unset fields are skipped when writing
GadgetAttrs.__new__.__defaults__ = (None,) * len(GadgetAttrs._fields)
ConfigAttrs.__new__.__defaults__ = (None,) * len(ConfigAttrs._fields)

# (attribute file, formatter)
gadget_attr_fields = [
    ('bcdUSB', fmt_hex16),
    ('bDeviceClass', fmt_hex8),
    ('bDeviceSubClass', fmt_hex8),
    ('bDeviceProtocol', fmt_hex8),
    ('bMaxPacketSize0', fmt_hex8),
    ('idVendor', fmt_hex16),
    ('idProduct', fmt_hex16),
    ('bcdDevice', fmt_hex16),
]
gadget_str_fields = ['serialnumber', 'manufacturer', 'product']


def insert_string_order(items, node):
    ''' insert node into items (sorted by name), keeping it sorted '''
    if not items or node.name < items[0].name:
        items.insert(0, node)
    elif node.name > items[-1].name:
        items.append(node)
    else:
        for i, cur in enumerate(items):
            if node.name > cur.name:
                continue
            items.insert(i, node)
            break

# payload formatting (validation), done before any store I/O

def _gadget_attr_bufs(attrs):
    return codec.format_fields([(fmt, attr, getattr(attrs, attr))
                                for attr, fmt in gadget_attr_fields
                                if getattr(attrs, attr) is not None])

def _gadget_str_bufs(strs):
    return codec.format_fields([(fmt_string, attr, getattr(strs, attr))
                                for attr in gadget_str_fields])

def _config_attr_bufs(attrs):
    fields = [
        (fmt_dec, 'MaxPower', attrs.bMaxPower),
        (fmt_hex8, 'bmAttributes', attrs.bmAttributes),
    ]
    return codec.format_fields([f for f in fields if f[2] is not None])

def _function_attr_bufs(ftype, name, attrs):
    ''' None for types without attributes (logged) '''
    if ftype in SERIAL_TYPES:
        expected = SerialAttrs
        layout = [(fmt_dec, 'port_num')]
    elif ftype in NET_TYPES:
        expected = NetAttrs
        layout = [
            (format_ether, 'dev_addr'),
            (format_ether, 'host_addr'),
            (fmt_string, 'ifname'),
            (fmt_dec, 'qmult'),
        ]
    elif ftype in PHONET_TYPES:
        expected = PhonetAttrs
        layout = [(fmt_string, 'ifname')]
    else:
        _logger.error('%s: unsupported function type', name)
        return None
    if not isinstance(attrs, expected):
        raise InvalidParamError('%s expects %s' % (name, expected.__name__))
    return codec.format_fields([(fmt, attr, getattr(attrs, attr)) for fmt, attr in layout
                                if getattr(attrs, attr) is not None])

def _find(items, name):
    for item in items:
        if item.name == name:
            return item
    return None

def _lang_dir(base, lang):
    return Path(base) / STRINGS_DIR / ('0x%x' % lang)

def _make_lang_dir(base, lang):
    spath = check_path(_lang_dir(base, lang))
    try:
        makedirs(spath, exist_ok=True)
    except OSError as e:
        # the writes that follow will fail and report it
        _logger.error('%s: %s', spath, e.strerror)
    return spath

def _mkdir(p):
    try:
        Path(p).mkdir(0o777)
    except OSError as e:
        err = translate_error(e, '%s: %s' % (p, e.strerror))
        _logger.error('%s', err)
        raise err from e

def _rmdir(p):
    try:
        Path(p).rmdir()
    except OSError as e:
        raise translate_error(e, '%s: %s' % (p, e.strerror)) from e

def _rmdir_container(p):
    ''' drop an emptied container dir (functions/, configs/, strings/)
    configfs owns these as default groups and refuses; plain trees don't
    '''
    p = Path(p)
    if not p.is_dir() or os.path.islink(p):
        return
    try:
        p.rmdir()
    except OSError as e:
        _logger.debug('keeping %s (%s)', p, e.strerror)

def _remove_strings(base):
    sdir = Path(base) / STRINGS_DIR
    if not sdir.is_dir():
        return
    for lang in sorted(p.name for p in sdir.iterdir() if p.is_dir()):
        _rmdir(sdir / lang)
    _rmdir_container(sdir)


class State(object):
    ''' root of the tree; owns the gadgets found under `path` '''

    def __init__(self, path, udc_dir=UDC_DIR):
        self.path = Path(path)
        self.udc_dir = udc_dir
        self._gadgets = []
        self.load_errors = [] # LoadFailure records from the last load

    def __repr__(self):
        return '<State %s (%s gadgets)>' % (self.path, len(self._gadgets))

    def __iter__(self):
        return iter(tuple(self._gadgets))

    @property
    def gadgets(self):
        return tuple(self._gadgets)

    @property
    def status(self):
        ''' first load error (None if everything loaded) '''
        return self.load_errors[0].error if self.load_errors else None

    def get_gadget(self, name):
        return _find(self._gadgets, name)

    def get_udcs(self):
        return get_udcs(self.udc_dir)

    def _create_empty_gadget(self, name):
        gpath = check_path(self.path / name)
        g = Gadget(self, name)
        _mkdir(gpath)
        # should be empty, but read whatever the kernel put there
        g.udc = codec.read_string_or_empty(self.path, name, 'UDC')
        return g

    def _check_new_gadget(self, name):
        check_name(name, 'gadget name')
        if self.get_gadget(name) is not None:
            _logger.error('duplicate gadget name: %s', name)
            raise DuplicateError('duplicate gadget name: %s' % name)

    def create_gadget(self, name, attrs=None, strs=None):
        ''' mkdir <path>/<name>, apply attrs and (US english) strings
        attribute/string writes are best-effort (failures are logged)
        '''
        self._check_new_gadget(name)
        attr_bufs = _gadget_attr_bufs(attrs) if attrs is not None else None
        str_bufs = _gadget_str_bufs(strs) if strs is not None else None
        g = self._create_empty_gadget(name)
        insert_string_order(self._gadgets, g)
        if attr_bufs is not None:
            codec.write_bufs(g.path, g.name, attr_bufs)
        if str_bufs is not None:
            codec.write_bufs(_make_lang_dir(g.full_path, LANG_US_ENG), '', str_bufs)
        _logger.debug('created gadget %s', name)
        return g

    def create_gadget_vid_pid(self, name, idVendor, idProduct):
        self._check_new_gadget(name)
        bufs = _gadget_attr_bufs(GadgetAttrs(idVendor=idVendor, idProduct=idProduct))
        g = self._create_empty_gadget(name)
        insert_string_order(self._gadgets, g)
        codec.write_bufs(g.path, g.name, bufs)
        return g

    def cleanup(self):
        ''' drop the whole tree (the store is left untouched) '''
        while self._gadgets:
            self._gadgets.pop(0).free()
        self.load_errors = []


class Gadget(object):

    def __init__(self, parent, name):
        self.parent = parent
        self.name = name
        self.path = parent.path
        self.udc = ''
        self._functions = []
        self._configs = []

    def __repr__(self):
        return '<Gadget %s udc=%r>' % (self.name, self.udc)

    @property
    def full_path(self):
        return self.path / self.name

    @property
    def functions(self):
        return tuple(self._functions)

    @property
    def configs(self):
        return tuple(self._configs)

    @property
    def enabled(self):
        return bool(self.udc)

    def get_function(self, name):
        return _find(self._functions, name)

    def get_config(self, name):
        return _find(self._configs, name)

    # attributes

    def get_attrs(self):
        ''' read all device descriptor fields; raises on the first unreadable one '''
        values = [codec.read_hex(self.path, self.name, attr) for attr, _ in gadget_attr_fields]
        return GadgetAttrs(*values)

    def set_attrs(self, attrs):
        ''' write every non-None field of attrs (a GadgetAttrs)
        not transactional: returns {attr: error} for the fields that failed
        '''
        return codec.write_bufs(self.path, self.name, _gadget_attr_bufs(attrs))

    def set_vendor_id(self, idVendor):
        return codec.write_hex16(self.path, self.name, 'idVendor', idVendor)

    def set_product_id(self, idProduct):
        return codec.write_hex16(self.path, self.name, 'idProduct', idProduct)

    def set_device_class(self, bDeviceClass):
        return codec.write_hex8(self.path, self.name, 'bDeviceClass', bDeviceClass)

    def set_device_protocol(self, bDeviceProtocol):
        return codec.write_hex8(self.path, self.name, 'bDeviceProtocol', bDeviceProtocol)

    def set_device_subclass(self, bDeviceSubClass):
        return codec.write_hex8(self.path, self.name, 'bDeviceSubClass', bDeviceSubClass)

    def set_device_max_packet(self, bMaxPacketSize0):
        return codec.write_hex8(self.path, self.name, 'bMaxPacketSize0', bMaxPacketSize0)

    def set_device_bcd_device(self, bcdDevice):
        return codec.write_hex16(self.path, self.name, 'bcdDevice', bcdDevice)

    def set_device_bcd_usb(self, bcdUSB):
        return codec.write_hex16(self.path, self.name, 'bcdUSB', bcdUSB)

    # strings

    def get_strs(self, lang=LANG_US_ENG):
        ''' GadgetStrs for lang, or None if that language was never set '''
        spath = _lang_dir(self.full_path, lang)
        if not spath.is_dir():
            return None
        return GadgetStrs(*[codec.read_string_or_empty(spath, '', attr)
                            for attr in gadget_str_fields])

    def set_strs(self, lang, strs):
        bufs = _gadget_str_bufs(strs)
        return codec.write_bufs(_make_lang_dir(self.full_path, lang), '', bufs)

    def _set_str(self, lang, attr, value):
        spath = _make_lang_dir(self.full_path, lang)
        return codec.write_string(spath, '', attr, value)

    def set_serial_number(self, lang, serno):
        return self._set_str(lang, 'serialnumber', serno)

    def set_manufacturer(self, lang, mnf):
        return self._set_str(lang, 'manufacturer', mnf)

    def set_product(self, lang, prd):
        return self._set_str(lang, 'product', prd)

    # structure

    def create_function(self, ftype, instance, attrs=None):
        ''' mkdir functions/<type>.<instance> '''
        type_name = function_type_name(ftype)
        if type_name is None:
            raise InvalidParamError('unsupported function type: %r' % (ftype,))
        check_name(instance, 'instance name')
        name = check_name('%s.%s' % (type_name, instance), 'function name')
        if self.get_function(name) is not None:
            _logger.error('duplicate function name: %s', name)
            raise DuplicateError('duplicate function name: %s' % name)

        bufs = _function_attr_bufs(ftype, name, attrs) if attrs is not None else None
        fdir = self.full_path / FUNCTIONS_DIR
        f = Function(self, name, fdir, FunctionType(ftype))
        _mkdir(check_path(fdir / name))
        insert_string_order(self._functions, f)
        if bufs:
            codec.write_bufs(f.path, f.name, bufs)
        return f

    def create_config(self, name, attrs=None, strs=None):
        ''' mkdir configs/<name>; strings go under US english '''
        check_name(name, 'config name')
        if self.get_config(name) is not None:
            _logger.error('duplicate configuration name: %s', name)
            raise DuplicateError('duplicate configuration name: %s' % name)

        attr_bufs = _config_attr_bufs(attrs) if attrs is not None else None
        label = fmt_string(strs.configuration) if strs is not None else None
        cdir = self.full_path / CONFIGS_DIR
        c = Config(self, name, cdir)
        _mkdir(check_path(cdir / name))
        insert_string_order(self._configs, c)
        if attr_bufs is not None:
            codec.write_bufs(c.path, c.name, attr_bufs)
        if label is not None:
            c.set_string(LANG_US_ENG, label)
        return c

    # udc

    def enable(self, udc=None):
        ''' bind to udc (first available controller if None)
        returns the write error, if any; no controllers means no-op
        '''
        if udc is None:
            try:
                udcs = get_udcs(self.parent.udc_dir)
            except NotFoundError:
                udcs = []
            if not udcs:
                _logger.warning('%s: no UDC available; staying disabled', self.name)
                return None
            udc = udcs[0]
        _logger.info('Binding %s to %s', self.name, udc)
        err = codec.write_string(self.path, self.name, 'UDC', udc)
        if err is None:
            self.udc = udc
        return err

    def disable(self):
        err = codec.write_string(self.path, self.name, 'UDC', '')
        if err is None:
            self.udc = ''
        return err

    # teardown

    def remove(self, recursive=False):
        ''' unbind, then rmdir everything below (recursive) and the gadget itself '''
        if (self._functions or self._configs) and not recursive:
            raise InvalidParamError('gadget %s is not empty' % self.name)
        if self.udc:
            err = self.disable()
            if err is not None:
                raise err
        for c in list(self._configs):
            c.remove(recursive=True)
        for f in list(self._functions):
            f.remove()
        _rmdir_container(self.full_path / CONFIGS_DIR)
        _rmdir_container(self.full_path / FUNCTIONS_DIR)
        _remove_strings(self.full_path)
        _rmdir(self.full_path)
        if self.parent is not None:
            self.parent._gadgets.remove(self)
        self.free()

    def free(self):
        while self._configs:
            self._configs.pop(0).free()
        while self._functions:
            self._functions.pop(0).free()
        self.parent = None


class Function(object):

    def __init__(self, parent, name, path, ftype):
        self.parent = parent
        self.name = name
        self.path = Path(path)
        self.type = ftype

    def __repr__(self):
        return '<Function %s (%s)>' % (self.name, self.type.name)

    @property
    def full_path(self):
        return self.path / self.name

    @property
    def instance(self):
        return self.name.split('.', 1)[1] if '.' in self.name else ''

    def get_attrs(self):
        ''' typed attribute record for this function (None if the type has none) '''
        if self.type in SERIAL_TYPES:
            return SerialAttrs(codec.read_dec(self.path, self.name, 'port_num'))
        elif self.type in NET_TYPES:
            return NetAttrs(
                codec.read_ether(self.path, self.name, 'dev_addr'),
                codec.read_ether(self.path, self.name, 'host_addr'),
                codec.read_string(self.path, self.name, 'ifname'),
                codec.read_dec(self.path, self.name, 'qmult'),
            )
        elif self.type in PHONET_TYPES:
            return PhonetAttrs(codec.read_string(self.path, self.name, 'ifname'))
        _logger.error('%s: unsupported function type', self.name)
        return None

    def set_attrs(self, attrs):
        ''' best-effort write of a SerialAttrs/NetAttrs/PhonetAttrs
        returns {attr: error} for failed fields (None fields are skipped)
        '''
        bufs = _function_attr_bufs(self.type, self.name, attrs)
        if bufs is None:
            return {}
        return codec.write_bufs(self.path, self.name, bufs)

    def set_net_dev_addr(self, dev_addr):
        return codec.write_ether(self.path, self.name, 'dev_addr', dev_addr)

    def set_net_host_addr(self, host_addr):
        return codec.write_ether(self.path, self.name, 'host_addr', host_addr)

    def set_net_qmult(self, qmult):
        return codec.write_dec(self.path, self.name, 'qmult', qmult)

    def remove(self):
        # bindings still pointing here are the caller's problem
        _rmdir(self.full_path)
        if self.parent is not None:
            self.parent._functions.remove(self)
        self.free()

    def free(self):
        self.parent = None


class Config(object):

    def __init__(self, parent, name, path):
        self.parent = parent
        self.name = name
        self.path = Path(path)
        self._bindings = []

    def __repr__(self):
        return '<Config %s>' % self.name

    @property
    def full_path(self):
        return self.path / self.name

    @property
    def bindings(self):
        return tuple(self._bindings)

    def get_binding(self, name):
        return _find(self._bindings, name)

    def get_link_binding(self, function):
        ''' binding of this config that targets function, if any '''
        for b in self._bindings:
            if b.target_name == function.name:
                return b
        return None

    def get_attrs(self):
        return ConfigAttrs(
            codec.read_dec(self.path, self.name, 'MaxPower'),
            codec.read_hex(self.path, self.name, 'bmAttributes'),
        )

    def set_attrs(self, attrs):
        return codec.write_bufs(self.path, self.name, _config_attr_bufs(attrs))

    def set_max_power(self, bMaxPower):
        return codec.write_dec(self.path, self.name, 'MaxPower', bMaxPower)

    def set_bm_attrs(self, bmAttributes):
        return codec.write_hex8(self.path, self.name, 'bmAttributes', bmAttributes)

    def set_power_flags(self, self_powered=False, remote_wakeup=False):
        ''' bmAttributes from flags (the reserved bit 7 is always set) '''
        return self.set_bm_attrs(codec.bm_attributes(self_powered, remote_wakeup))

    def get_strs(self, lang=LANG_US_ENG):
        spath = _lang_dir(self.full_path, lang)
        if not spath.is_dir():
            return None
        return ConfigStrs(codec.read_string_or_empty(spath, '', 'configuration'))

    def set_strs(self, lang, strs):
        return self.set_string(lang, strs.configuration)

    def set_string(self, lang, string):
        spath = _make_lang_dir(self.full_path, lang)
        return codec.write_string(spath, '', 'configuration', string)

    def add_function(self, name, function):
        ''' link function into this config as <name> '''
        check_name(name, 'binding name')
        if function is None or function.parent is None or function.parent is not self.parent:
            raise InvalidParamError('function does not belong to gadget %s' % (
                self.parent.name if self.parent else None))
        if self.get_binding(name) is not None:
            _logger.error('duplicate binding name: %s', name)
            raise DuplicateError('duplicate binding name: %s' % name)
        if self.get_link_binding(function) is not None:
            _logger.error('duplicate binding link: %s', function.name)
            raise DuplicateError('duplicate binding link: %s' % function.name)

        bpath = check_path(self.full_path / name)
        b = Binding(self, name, function.name)
        try:
            os.symlink(function.full_path, bpath)
        except OSError as e:
            err = translate_error(e, '%s -> %s: %s' % (bpath, function.full_path, e.strerror))
            _logger.error('%s', err)
            raise err from e
        insert_string_order(self._bindings, b)
        return b

    def remove(self, recursive=False):
        if self._bindings and not recursive:
            raise InvalidParamError('config %s still has bindings' % self.name)
        for b in list(self._bindings):
            b.remove()
        _remove_strings(self.full_path)
        _rmdir(self.full_path)
        if self.parent is not None:
            self.parent._configs.remove(self)
        self.free()

    def free(self):
        while self._bindings:
            self._bindings.pop(0).free()
        self.parent = None


class Binding(object):
    ''' symlink <config>/<name> -> functions/<target_name>
    the target is looked up through the gadget on access, so a removed
    function simply resolves to None
    '''

    def __init__(self, parent, name, target_name):
        self.parent = parent
        self.name = name
        self.path = parent.full_path
        self.target_name = target_name

    def __repr__(self):
        return '<Binding %s -> %s>' % (self.name, self.target_name)

    @property
    def full_path(self):
        return self.path / self.name

    @property
    def target(self):
        if self.parent is None or self.parent.parent is None:
            return None
        return self.parent.parent.get_function(self.target_name)

    def remove(self):
        try:
            Path(self.full_path).unlink()
        except OSError as e:
            raise translate_error(e, '%s: %s' % (self.full_path, e.strerror)) from e
        if self.parent is not None:
            self.parent._bindings.remove(self)
        self.free()

    def free(self):
        self.parent = None
