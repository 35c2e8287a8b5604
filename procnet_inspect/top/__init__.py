from .command import DEFAULT_EXEC_PATH, TopConfig, get
from .parse import HEADERS, parse_output, parse_row
from .stream import Stream, StreamState
