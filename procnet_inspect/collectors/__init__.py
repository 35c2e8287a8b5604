from .fdindex import FdInodeIndex
from .loop import collector_loop
from .nettcp import parse_table, read_table
from .resolver import SocketResolver, resolve_sockets
