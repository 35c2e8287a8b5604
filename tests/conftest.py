import os
import stat
import textwrap

import pytest

TCP_TABLE = """\
  sl  local_address rem_address   st tx_queue rx_queue tr tm->when retrnsmt   uid  timeout inode
   0: 0100007F:0CEA 00000000:0000 0A 00000000:00000000 00:00000000 00000000  1000        0 24001 1 0000000000000000 100 0 0 10 0
   1: 0100007F:A1B2 0100007F:0CEA 01 00000010:00000002 00:00000000 00000000  1000        0 24002 1 0000000000000000 20 4 30 10 -1
   2: 0200000A:0016 0100000A:D431 01 00000000:00000000 02:000A7B1C 00000000     0        0 99999 2 0000000000000000 22 4 29 10 20
"""

TCP6_TABLE = """\
  sl  local_address                         remote_address                        st tx_queue rx_queue tr tm->when retrnsmt   uid  timeout inode
   0: 00000000000000000000000001000000:0016 00000000000000000000000000000000:0000 0A 00000000:00000000 00:00000000 00000000     0        0 24100 1 0000000000000000 100 0 0 10 0
   1: 4506012640B600C10C1136C5C1EB0C75:01BB 00000000000000000000000001000000:E0F1 01 00000000:00000000 00:00000000 00000000  1000        0 24101 1 0000000000000000 20 4 30 10 -1
"""

# pid -> (comm or None, exe or None, {fd: link target})
PROCS = {
    100: ("sshd", None, {0: "/dev/null", 3: "socket:[24001]", 5: "socket:[24100]"}),
    200: ("mysqld", None, {3: "pipe:[777]", 4: "socket:[24002]", 7: "socket:[24001]"}),
    300: (None, "/usr/bin/curl", {9: "socket:[24101]"}),
}


@pytest.fixture
def fake_proc(tmp_path):
    """A /proc look-alike with two socket tables and a few processes."""
    root = tmp_path / "proc"
    (root / "net").mkdir(parents=True)
    (root / "net" / "tcp").write_text(TCP_TABLE)
    (root / "net" / "tcp6").write_text(TCP6_TABLE)
    for pid, (comm, exe, fds) in PROCS.items():
        d = root / str(pid)
        (d / "fd").mkdir(parents=True)
        if comm is not None:
            (d / "comm").write_text(comm + "\n")
        if exe is not None:
            os.symlink(exe, d / "exe")
        for fd, target in fds.items():
            os.symlink(target, d / "fd" / str(fd))
    # gone before its fds could be listed
    (root / "400").mkdir()
    os.symlink("100", root / "self")
    return str(root)


FAKE_TOP = r"""#!/bin/sh
n=0; d=0.1; p=""
while [ $# -gt 0 ]; do
  case "$1" in
    -b) ;;
    -n) shift; n=$1 ;;
    -d) shift; d=$1 ;;
    -p) shift; p=$1 ;;
  esac
  shift
done
i=0
while [ "$n" -eq 0 ] || [ "$i" -lt "$n" ]; do
  i=$((i + 1))
  echo "top - 10:00:0$i up 1 day,  2 users,  load average: 0.00, 0.01, 0.05"
  echo "Tasks:   2 total,   1 running,   1 sleeping,   0 stopped,   0 zombie"
  echo "%Cpu(s):  1.0 us,  0.5 sy,  0.0 ni, 98.5 id,  0.0 wa,  0.0 hi,  0.0 si,  0.0 st"
  echo "MiB Mem :  15896.1 total,   1024.0 free,   4096.0 used,  10776.1 buff/cache"
  echo "MiB Swap:   2048.0 total,   2048.0 free,      0.0 used.  11000.0 avail Mem"
  echo ""
  echo "    PID USER      PR  NI    VIRT    RES    SHR S  %CPU  %MEM     TIME+ COMMAND"
  if [ -z "$p" ] || [ "$p" = 1 ]; then
    echo "      1 root      20   0  168720  12.5m   8192 S   $i.0   0.1   0:05.12 systemd"
  fi
  if [ -z "$p" ] || [ "$p" = 4242 ]; then
    echo "   4242 mysql     rt   -  50.883g   1.2g  16384 R  12.5  31.0 120:01.00 mysqld"
  fi
  if [ -n "$FAKE_TOP_NOISE" ]; then
    echo "this line is not a process row"
    echo "      7 root      20   0   bogus   1024    512 S   0.0   0.0   0:00.00 kthreadd"
  fi
  sleep "$d"
done
exit "${FAKE_TOP_EXIT:-0}"
"""


def write_script(path, body):
    path.write_text(textwrap.dedent(body))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def fake_top(tmp_path):
    return write_script(tmp_path / "top", FAKE_TOP)
