"""Fixture: a module using @luaannotation escapes. Parsed, never imported."""


def load_custom_annotations_module(lua):
    """Load the custom_annotations module.

    @luamodule custom_annotations
    @luaannotation @alias ID string|number
    @luaannotation @alias Handler fun(id: ID): boolean
    """
    return lua.table_from({"process_id": process_id, "process_typed_id": process_typed_id})


def process_id(id):
    """Process an ID value.

    @luafunc process_id
    @luaparam id ID the identifier to process
    @luareturn boolean true if valid
    @luaannotation @deprecated Use process_typed_id instead
    @luaannotation @nodiscard
    """
    return True


def process_typed_id(id):
    """Process a typed ID value with generics.

    @luafunc process_typed_id
    @luaparam id any the identifier to process
    @luareturn boolean true if valid
    @luaannotation @generic T
    """
    return True
