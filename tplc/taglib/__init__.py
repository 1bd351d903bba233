from .cache import DEFAULT_CACHE, DescriptorCache
from .hooks import (
    REQUEST_TIME_VALUE,
    PageData,
    TagData,
    TagExtraInfo,
    TagLibraryValidator,
    ValidationMessage,
    VariableInfo,
    load_object,
)
from .library import IMPLICIT_TAG_ROOT, ImplicitTagLibraryInfo, TagFileInfo, TagLibraryInfo
from .loader import DESCRIPTOR_SUFFIX, load_descriptor
from .model import (
    BodyContent,
    FunctionInfo,
    TagAttributeInfo,
    TagInfo,
    TagLibraryDescriptor,
    TagVariableInfo,
    VariableScope,
)

__all__ = [
    "DEFAULT_CACHE", "DescriptorCache", "REQUEST_TIME_VALUE", "PageData",
    "TagData", "TagExtraInfo", "TagLibraryValidator", "ValidationMessage",
    "VariableInfo", "load_object", "IMPLICIT_TAG_ROOT", "ImplicitTagLibraryInfo",
    "TagFileInfo", "TagLibraryInfo", "DESCRIPTOR_SUFFIX", "load_descriptor",
    "BodyContent", "FunctionInfo", "TagAttributeInfo", "TagInfo",
    "TagLibraryDescriptor", "TagVariableInfo", "VariableScope",
]
