"""Order-independent comparison of records.

Control fields, data fields and the subfields of each data field are
compared as multisets. Whether the leader takes part is chosen explicitly,
since line records may carry a leader synthesized from a template.
"""

from marcconv.marc import ControlField, DataField, Record


def _control_key(field: ControlField) -> tuple[str, str]:
    return (field.tag, field.value)


def _data_key(field: DataField) -> tuple[str, str, str]:
    return (field.tag, field.indicator1, field.indicator2)


def _subfields(field: DataField) -> list[tuple[str, str]]:
    return sorted((subfield.code, subfield.value) for subfield in field.subfields)


def equals(a: Record, b: Record, include_leader: bool) -> bool:
    if include_leader and a.leader != b.leader:
        return False

    if len(a.control_fields) != len(b.control_fields):
        return False

    a_ctrl = sorted(map(_control_key, a.control_fields))
    b_ctrl = sorted(map(_control_key, b.control_fields))
    if a_ctrl != b_ctrl:
        return False

    if len(a.data_fields) != len(b.data_fields):
        return False

    # Fields sharing (tag, ind1, ind2) are ordered by their subfields too,
    # so that duplicates pair up regardless of input order.
    a_data = sorted(a.data_fields, key=lambda f: (_data_key(f), _subfields(f)))
    b_data = sorted(b.data_fields, key=lambda f: (_data_key(f), _subfields(f)))
    for fa, fb in zip(a_data, b_data):
        if _data_key(fa) != _data_key(fb):
            return False
        if len(fa.subfields) != len(fb.subfields):
            return False
        if _subfields(fa) != _subfields(fb):
            return False

    return True


def records_equal(a: Record, b: Record) -> bool:
    """Structural equality ignoring the leader."""
    return equals(a, b, include_leader=False)


def records_equal_with_leader(a: Record, b: Record) -> bool:
    return equals(a, b, include_leader=True)
