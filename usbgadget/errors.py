#!/usr/bin/python3

''' error kinds reported by usbgadget
every OSError coming out of configfs is mapped onto one of these before it
leaves the codec/filesystem layer
'''

import errno


class UsbgError(Exception):
    pass

class NotFoundError(UsbgError):
    pass

class NoAccessError(UsbgError):
    pass

class InvalidParamError(UsbgError):
    pass

class DuplicateError(InvalidParamError):
    ''' name (or binding target) already present in its scope '''
    pass

class IOFailure(UsbgError):
    pass

class NoMemoryError(UsbgError):
    pass

class OtherError(UsbgError):
    pass


_errno_map = {
    errno.ENOMEM: NoMemoryError,
    errno.EACCES: NoAccessError,
    errno.EPERM: NoAccessError,
    errno.ENOENT: NotFoundError,
    errno.ENOTDIR: NotFoundError,
    errno.EINVAL: InvalidParamError,
    errno.EIO: IOFailure,
}

def error_class(exc):
    ''' taxonomy class for a raw exception '''
    if isinstance(exc, UsbgError):
        return type(exc)
    if isinstance(exc, MemoryError):
        return NoMemoryError
    if isinstance(exc, OSError):
        return _errno_map.get(exc.errno, OtherError)
    return OtherError

def translate_error(exc, msg=None):
    ''' wrap exc in its taxonomy class (the caller chains it with `from`) '''
    if isinstance(exc, UsbgError):
        return exc
    cls = error_class(exc)
    if msg is None:
        msg = str(exc)
    err = cls(msg)
    err.errno = getattr(exc, 'errno', None)
    return err
