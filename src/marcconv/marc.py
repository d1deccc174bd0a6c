from marcconv.constants import LEADER_LENGTH, LEADER_TEMPLATE
from marcconv.errors import InvalidFieldError, NonNumericFieldError


def _check_tag(tag: str) -> str:
    if not isinstance(tag, str) or len(tag) != 3:
        raise InvalidFieldError(f"tag must be 3 characters, got {tag!r}")
    return tag


def _indicator(ind: str | None) -> str:
    if not ind:
        return ' '
    if len(ind) != 1:
        raise InvalidFieldError(f"indicator must be 1 character, got {ind!r}")
    return ind


class VariableField:
    def __init__(self, tag: str) -> None:
        self.tag = _check_tag(tag)


class ControlField(VariableField):
    def __init__(self, tag: str, value: str) -> None:
        super().__init__(tag)
        if not tag.startswith('00'):
            raise InvalidFieldError(f"control field tag must start with '00', got {tag!r}")
        self.value = value if value is not None else ''

    def __repr__(self) -> str:
        return f"ControlField({self.tag!r}, {self.value!r})"

    def __str__(self) -> str:
        return f"{self.tag} {self.value}"


class SubField:
    def __init__(self, code: str, value: str) -> None:
        if not isinstance(code, str) or len(code) != 1:
            raise InvalidFieldError(f"subfield code must be 1 character, got {code!r}")
        self.code = code
        self.value = value if value is not None else ''

    def __repr__(self) -> str:
        return f"SubField({self.code!r}, {self.value!r})"

    def __str__(self) -> str:
        return f"${self.code}{self.value}"


class DataField(VariableField):
    def __init__(self, tag: str, ind1: str | None = ' ', ind2: str | None = ' ') -> None:
        super().__init__(tag)
        if tag.startswith('00'):
            raise InvalidFieldError(f"data field tag must not start with '00', got {tag!r}")
        self.indicator1 = _indicator(ind1)
        self.indicator2 = _indicator(ind2)
        self.__subfields: list[SubField] = []

    @property
    def subfields(self) -> tuple[SubField, ...]:
        return tuple(self.__subfields)

    def add_subfield(self, code: str, value: str) -> 'DataField':
        self.__subfields.append(SubField(code, value))
        return self

    def subfield(self, code: str) -> str:
        """Value of the first subfield with `code`, or an empty string."""
        for subfield in self.__subfields:
            if subfield.code == code:
                return subfield.value
        return ''

    def __getitem__(self, key) -> list[SubField] | None:
        res = [subfield for subfield in self.__subfields if subfield.code == key]
        return res if len(res) > 0 else None

    def __contains__(self, key) -> bool:
        for subfield in self.__subfields:
            if subfield.code == key:
                return True

        return False

    def __repr__(self) -> str:
        return f"DataField({self.tag!r}, {self.indicator1!r}, {self.indicator2!r}, {self.subfields!r})"

    def __str__(self) -> str:
        res = f"{self.tag} {self.indicator1}{self.indicator2}"
        for subfield in self.__subfields:
            res += str(subfield)
        return res


class Leader:
    """Numeric view of the structural positions of a 24 character leader."""

    def __init__(self, leader_str: str) -> None:
        if len(leader_str) != LEADER_LENGTH:
            raise InvalidFieldError(f"leader must be {LEADER_LENGTH} characters, got {len(leader_str)}")
        self.raw = leader_str
        self.record_length = Leader.__number(leader_str, 0, 5, 'record length')
        self.base_address_of_data = Leader.__number(leader_str, 12, 17, 'base address of data')

    @staticmethod
    def __number(leader_str: str, start: int, end: int, name: str) -> int:
        raw = leader_str[start:end]
        if not (raw.isascii() and raw.isdigit()):
            raise NonNumericFieldError(f"leader {name}", raw, start)
        return int(raw)

    @staticmethod
    def text_encoding(leader_str: str) -> str:
        # leader/09: a = UCS/Unicode, anything else read as Latin-1
        return 'utf-8' if leader_str[9:10] == 'a' else 'iso8859-1'

    @staticmethod
    def from_partial(text: str) -> str:
        """Complete a leader given only its first characters."""
        text = text[:LEADER_LENGTH]
        return text + LEADER_TEMPLATE[len(text):]

    def __str__(self) -> str:
        return self.raw


class Record:
    def __init__(self, leader: str | None = None) -> None:
        self.__leader: str | None = None
        self.leader = leader
        self.__control_fields: list[ControlField] = []
        self.__data_fields: list[DataField] = []

    @property
    def leader(self) -> str | None:
        return self.__leader

    @leader.setter
    def leader(self, leader: str | None) -> None:
        if leader is not None and len(leader) != LEADER_LENGTH:
            raise InvalidFieldError(f"leader must be {LEADER_LENGTH} characters, got {leader!r}")
        self.__leader = leader

    @property
    def control_fields(self) -> tuple[ControlField, ...]:
        return tuple(self.__control_fields)

    @property
    def data_fields(self) -> tuple[DataField, ...]:
        return tuple(self.__data_fields)

    def add_control_field(self, tag: str, value: str) -> ControlField:
        field = ControlField(tag, value)
        self.__control_fields.append(field)
        return field

    def set_control_field(self, tag: str, value: str) -> ControlField:
        for i, field in enumerate(self.__control_fields):
            if field.tag == tag:
                self.__control_fields[i] = ControlField(tag, value)
                return self.__control_fields[i]
        return self.add_control_field(tag, value)

    def add_data_field(self, tag: str, ind1: str | None = ' ', ind2: str | None = ' ') -> DataField:
        field = DataField(tag, ind1, ind2)
        self.__data_fields.append(field)
        return field

    def get_control_field(self, tag: str) -> ControlField | None:
        for field in self.__control_fields:
            if field.tag == tag:
                return field
        return None

    def get_data_fields(self, tag: str) -> list[DataField]:
        return [field for field in self.__data_fields if field.tag == tag]

    def __getitem__(self, key) -> list[ControlField | DataField] | None:
        res = []

        for field in self.__control_fields:
            if field.tag == key:
                res.append(field)

        for field in self.__data_fields:
            if field.tag == key:
                res.append(field)

        return res if len(res) > 0 else None

    def __contains__(self, key) -> bool:
        for field in self.__control_fields:
            if field.tag == key:
                return True

        for field in self.__data_fields:
            if field.tag == key:
                return True

        return False

    def as_dict(self) -> dict:
        obj = {
            'leader': self.__leader,
            'fields': []
        }

        for field in self.__control_fields:
            obj['fields'].append({
                field.tag: field.value
            })

        for field in self.__data_fields:
            obj['fields'].append({
                field.tag: {
                    'ind1': field.indicator1,
                    'ind2': field.indicator2,
                    'subfields': [{subfield.code: subfield.value} for subfield in field.subfields]
                }
            })

        return obj

    def __repr__(self) -> str:
        return f"Record(leader={self.__leader!r}, control_fields={len(self.__control_fields)}, data_fields={len(self.__data_fields)})"

    def __str__(self) -> str:
        res = f"=LDR {self.__leader if self.__leader is not None else ''}"
        for field in self.__control_fields:
            res += f"\n={field}"
        for field in self.__data_fields:
            res += f"\n={field}"
        return res
