RT = b'\x1d'
FT = b'\x1e'
US = b'\x1f'

LEADER_LENGTH = 24
DIRECTORY_ENTRY_LENGTH = 12
MAX_RECORD_LENGTH = 99999
MAX_FIELD_LENGTH = 9999

# Positions of a leader not supplied by a line record are taken from here.
LEADER_TEMPLATE = "         a22        4500"

LINE_TAG = '*'
LINE_SUBFIELD = '$'
LINE_TERMINATOR = '^'

MARCXML_NAMESPACE = 'http://www.loc.gov/MARC21/slim'
