"""Loading an existing usb_gadget tree."""

import errno
import os

import pytest
from path import Path

import usbgadget
from usbgadget import FunctionType
from usbgadget.errors import NotFoundError, NoAccessError, OtherError

from conftest import make_gadget


def snapshot(state):
    """Structure of a loaded tree as plain data (order matters)."""
    return [
        (g.name, g.udc,
         [(f.name, f.type) for f in g.functions],
         [(c.name, [(b.name, b.target_name) for b in c.bindings]) for c in g.configs])
        for g in state
    ]


def test_init_without_usb_gadget_dir(tmp_path):
    with pytest.raises(NotFoundError):
        usbgadget.init(str(tmp_path / 'nowhere'))


def test_init_with_a_file_instead_of_dir(tmp_path):
    (tmp_path / 'usb_gadget').write_text('')
    with pytest.raises(NotFoundError):
        usbgadget.init(str(tmp_path))


def test_empty_store(configfs):
    state = usbgadget.init(str(configfs))
    assert state.gadgets == ()
    assert state.status is None
    assert state.path == Path(configfs / 'usb_gadget')


def test_gadgets_and_children_sorted(configfs, populated):
    state = usbgadget.init(str(configfs))
    assert [g.name for g in state] == ['g0', 'g1']
    g1 = state.get_gadget('g1')
    assert [f.name for f in g1.functions] == ['acm.GS0', 'ecm.usb0', 'hid.usb0']
    assert [c.name for c in g1.configs] == ['c.1', 'c.2']
    assert [b.name for b in g1.get_config('c.1').bindings] == ['acm.GS0', 'ecm.usb0']


def test_udc_and_function_types(configfs, populated):
    state = usbgadget.init(str(configfs))
    g1 = state.get_gadget('g1')
    assert g1.udc == 'controller0'
    assert g1.enabled
    assert state.get_gadget('g0').udc == ''
    assert g1.get_function('acm.GS0').type is FunctionType.ACM
    assert g1.get_function('ecm.usb0').type is FunctionType.ECM
    # unknown prefix doesn't stop the load
    assert g1.get_function('hid.usb0').type is FunctionType.UNKNOWN
    assert state.status is None


def test_bindings_resolve_to_functions(configfs, populated):
    state = usbgadget.init(str(configfs))
    g1 = state.get_gadget('g1')
    c1 = g1.get_config('c.1')
    assert c1.get_binding('acm.GS0').target is g1.get_function('acm.GS0')
    assert c1.get_binding('ecm.usb0').target is g1.get_function('ecm.usb0')
    assert g1.get_config('c.2').get_binding('link').target is g1.get_function('hid.usb0')
    assert c1.get_link_binding(g1.get_function('ecm.usb0')).name == 'ecm.usb0'


def test_only_symlinks_count_as_bindings(configfs, populated):
    cdir = populated / 'g1' / 'configs' / 'c.1'
    (cdir / 'strings' / '0x409').mkdir(parents=True)
    (cdir / 'strings' / '0x409' / 'configuration').write_text('CDC\n')
    state = usbgadget.init(str(configfs))
    names = [b.name for b in state.get_gadget('g1').get_config('c.1').bindings]
    assert names == ['acm.GS0', 'ecm.usb0']


def test_reload_is_identical(configfs, populated):
    first = usbgadget.init(str(configfs))
    second = usbgadget.init(str(configfs))
    assert snapshot(first) == snapshot(second)


def test_link_outside_known_functions(configfs, usb_gadget):
    make_gadget(usb_gadget, 'g1', functions=['acm.GS0'], configs={
        'c.1': {'acm.GS0': 'acm.GS0'},
        'c.2': {},
        'c.3': {'acm.GS0': 'acm.GS0'},
    })
    os.symlink('/elsewhere/functions/rndis.usb9', str(usb_gadget / 'g1' / 'configs' / 'c.2' / 'rndis.usb9'))

    state = usbgadget.init(str(configfs))
    g1 = state.get_gadget('g1')
    assert isinstance(state.status, NotFoundError)
    assert len(state.load_errors) == 1
    assert state.load_errors[0].path.name == 'rndis.usb9'
    # siblings are fine
    assert [c.name for c in g1.configs] == ['c.1', 'c.2', 'c.3']
    assert g1.get_config('c.1').get_binding('acm.GS0').target is g1.get_function('acm.GS0')
    assert g1.get_config('c.3').get_binding('acm.GS0').target is g1.get_function('acm.GS0')
    dangling = g1.get_config('c.2').get_binding('rndis.usb9')
    assert dangling.target is None
    assert dangling.target_name == 'rndis.usb9'


def test_strict_raises_first_error(configfs, usb_gadget):
    make_gadget(usb_gadget, 'g1', functions=[], configs={'c.1': {}})
    os.symlink('/elsewhere/functions/ecm.x', str(usb_gadget / 'g1' / 'configs' / 'c.1' / 'ecm.x'))
    with pytest.raises(NotFoundError) as info:
        usbgadget.init(str(configfs), strict=True)
    assert [g.name for g in info.value.state] == ['g1']


def test_gadget_without_udc_is_skipped(configfs, populated):
    (populated / 'g0' / 'UDC').unlink()
    state = usbgadget.init(str(configfs))
    assert [g.name for g in state] == ['g1']
    assert isinstance(state.status, NotFoundError)
    assert state.load_errors[0].path.name == 'g0'


def test_undecodable_udc_skips_only_that_gadget(configfs, populated):
    (populated / 'g0' / 'UDC').write_bytes(b'\xff\xfe\n')
    state = usbgadget.init(str(configfs))
    assert [g.name for g in state] == ['g1']
    assert isinstance(state.status, OtherError)
    assert state.load_errors[0].path.name == 'g0'


def test_gadget_without_configs_dir_is_skipped(configfs, usb_gadget):
    make_gadget(usb_gadget, 'g1', functions=['acm.GS0'])
    (usb_gadget / 'g1' / 'configs').rmdir()
    make_gadget(usb_gadget, 'g2')
    state = usbgadget.init(str(configfs))
    assert [g.name for g in state] == ['g2']
    assert isinstance(state.status, NotFoundError)


def test_unreadable_link_drops_its_config(configfs, populated, monkeypatch):
    real_readlink = Path.readlink

    def readlink(self):
        if self.name == 'link':
            raise PermissionError(errno.EACCES, 'Permission denied', str(self))
        return real_readlink(self)

    monkeypatch.setattr(Path, 'readlink', readlink)
    state = usbgadget.init(str(configfs))
    g1 = state.get_gadget('g1')
    assert [c.name for c in g1.configs] == ['c.1']
    assert isinstance(state.status, NoAccessError)


def test_cleanup_drops_tree_but_not_store(configfs, populated):
    state = usbgadget.init(str(configfs))
    g1 = state.get_gadget('g1')
    c1 = g1.get_config('c.1')
    b = c1.bindings[0]
    usbgadget.cleanup(state)
    assert state.gadgets == ()
    assert g1.parent is None and c1.parent is None and b.parent is None
    assert g1.functions == () and c1.bindings == ()
    assert b.target is None
    assert (populated / 'g1' / 'configs' / 'c.1' / 'acm.GS0').is_symlink()
