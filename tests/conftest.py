"""Shared fixtures: a fake configfs tree under tmp_path.

A plain directory tree can't react to mkdir the way configfs does, so the
helpers below lay out what the kernel would have created (UDC file,
functions/, configs/, strings/).
"""

import os

import pytest


def make_gadget(usb_gadget, name, udc='', functions=(), configs=None):
    """Create a gadget directory the way the kernel populates it.

    configs maps config name -> {link name: function name}.
    """
    gdir = usb_gadget / name
    for sub in ('functions', 'configs', 'strings'):
        (gdir / sub).mkdir(parents=True)
    (gdir / 'UDC').write_text(udc + '\n')
    for fname in functions:
        (gdir / 'functions' / fname).mkdir()
    for cname, links in (configs or {}).items():
        cdir = gdir / 'configs' / cname
        cdir.mkdir()
        (cdir / 'MaxPower').write_text('120\n')
        (cdir / 'bmAttributes').write_text('0x80\n')
        for link, target in links.items():
            os.symlink(str(gdir / 'functions' / target), str(cdir / link))
    return gdir


def write_gadget_attrs(gdir, **values):
    defaults = {
        'bcdUSB': '0x0200', 'bDeviceClass': '0x00', 'bDeviceSubClass': '0x00',
        'bDeviceProtocol': '0x00', 'bMaxPacketSize0': '0x40',
        'idVendor': '0x0000', 'idProduct': '0x0000', 'bcdDevice': '0x0100',
    }
    defaults.update(values)
    for attr, text in defaults.items():
        (gdir / attr).write_text(text + '\n')


@pytest.fixture
def configfs(tmp_path):
    """Empty configfs mount point with a usb_gadget directory."""
    root = tmp_path / 'config'
    (root / 'usb_gadget').mkdir(parents=True)
    return root


@pytest.fixture
def usb_gadget(configfs):
    return configfs / 'usb_gadget'


@pytest.fixture
def udc_dir(tmp_path):
    d = tmp_path / 'udc'
    d.mkdir()
    return d


@pytest.fixture
def populated(usb_gadget):
    """Two gadgets; g1 has an acm/ecm pair bound into c.1, plus an unknown type."""
    make_gadget(
        usb_gadget, 'g1', udc='controller0',
        functions=['ecm.usb0', 'acm.GS0', 'hid.usb0'],
        configs={
            'c.1': {'acm.GS0': 'acm.GS0', 'ecm.usb0': 'ecm.usb0'},
            'c.2': {'link': 'hid.usb0'},
        },
    )
    make_gadget(usb_gadget, 'g0', functions=['rndis.usb0'], configs={'c.1': {}})
    return usb_gadget
