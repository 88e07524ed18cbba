class AppStatusCode:
    # success
    DATA_RETRIEVED_SUCCESSFULLY = "100"
    OPERATION_SUCCESSFUL = "101"
    CREATED_SUCCESSFULLY = "102"

    # generic failures
    OPERATION_FAILED = "200"
    INVALID_INPUT = "201"
    NOT_FOUND = "203"
    OPERATION_TIMEOUT = "204"
    DUPLICATE_ENTRY = "205"

    # barcode lifecycle
    BARCODE_UNKNOWN = "300"
    BARCODE_INVALID_TRANSITION = "301"
    BARCODE_ALREADY_CONSUMED = "302"
    BARCODE_NOT_SCANNED = "303"
    BARCODE_WRONG_TYPE = "304"
    BARCODE_HAS_CHILDREN = "305"

    # reconciliation
    QUANTITY_EXCEEDED = "400"
    NO_MATCHING_REQUIREMENT = "401"
    INCOMPLETE_REQUIREMENTS = "402"

    # sessions
    SESSION_NOT_FOUND = "500"
    SESSION_CLOSED = "501"
    CONCURRENT_MODIFICATION = "502"

    # kits / BOM
    KIT_NOT_FOUND = "600"
    KIT_MISMATCH = "601"
    KIT_LOCKED = "602"
    BOM_INVALID = "603"
