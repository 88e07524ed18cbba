from enum import Enum


class BarcodeStatus(str, Enum):
    CREATED = "CREATED"
    SCANNED = "SCANNED"
    BOXED = "BOXED"


class BarcodeEvent(str, Enum):
    SCAN = "SCAN"
    BOX = "BOX"
    UNSCAN = "UNSCAN"
    UNBOX = "UNBOX"


class ObjectType(str, Enum):
    COMPONENT = "COMPONENT"
    BOX = "BOX"


class SessionMode(str, Enum):
    BOX = "BOX"
    BATCH = "BATCH"


class SessionStatus(str, Enum):
    OPEN = "OPEN"
    COMPLETE = "COMPLETE"


class ScanAction(str, Enum):
    GENERATE = "GENERATE"
    SCAN = "SCAN"
    UNSCAN = "UNSCAN"
    BOX = "BOX"
    UNBOX = "UNBOX"
    PACK = "PACK"
    UNPACK = "UNPACK"
    LINK_PARENT = "LINK_PARENT"
    UNLINK_PARENT = "UNLINK_PARENT"


class ChildMatchPolicy(str, Enum):
    CATEGORY = "category"
    COMPONENT = "component"


class ChildTieBreak(str, Enum):
    PREORDER = "preorder"
    LATEST_PARENT = "latest_parent"
