import io
import re
import sys
import os
from datetime import datetime
import pytest
from unittest import mock

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import mks_os as m

ANSI = re.compile(r"\x1b\[[0-9;]*m|\x1bc")
# a Tuesday
WHEN = datetime(2024, 3, 5, 14, 7, 9)


def plain(text):
    return ANSI.sub("", text)


def make_shell(stdin_text="", host=None, **settings):
    settings.setdefault("animate", False)
    out = io.StringIO()
    shell = m.MKShell(
        settings=m.Settings(**settings),
        host=host,
        stdin=io.StringIO(stdin_text),
        stdout=out,
        clock=lambda: WHEN,
    )
    return shell, out


def run(shell, line):
    """Dispatch one line and return the lines it printed, colours removed."""
    out = shell.stdout
    mark = len(out.getvalue())
    shell.dispatch(line)
    return plain(out.getvalue()[mark:]).splitlines()


@pytest.fixture
def shell():
    sh, _ = make_shell()
    return sh


# ---- parsing and routing

def test_empty_line_is_silent(shell):
    assert run(shell, "") == []
    assert run(shell, "   \t ") == []


def test_command_names_fold_case(shell):
    assert run(shell, "VER") == ["MKS-OS version 1.3"]
    run(shell, "Cd System")
    assert shell.session.current_directory == "C:\\System\\"


def test_unknown_command(shell):
    assert run(shell, "frobnicate now") == ["Command 'frobnicate' not found. Type 'help' for help."]


def test_unknown_command_suggests_close_match(shell):
    lines = run(shell, "hisotry")
    assert lines[0] == "Command 'hisotry' not found. Type 'help' for help."
    assert "  - history" in lines


def test_aliases_route_to_same_operation(shell):
    assert run(shell, "ls") == run(shell, "dir")
    assert run(shell, "cat readme.txt") == run(shell, "type readme.txt")
    assert run(shell, "about")[0] == "SYSTEM INFORMATION"


def test_handler_failure_is_reported(shell):
    def broken(sh, args):
        raise RuntimeError("boom")

    shell.commands["ver"] = broken
    assert run(shell, "ver") == ["Command 'ver' failed: boom"]


def test_usage_hints(shell):
    assert run(shell, "echo") == ["Usage: echo <text>"]
    assert run(shell, "type") == ["Usage: type <filename>"]
    assert run(shell, "copy a.txt") == ["Usage: copy <source> <destination>"]
    assert run(shell, "ren a.txt") == ["Usage: rename <oldname> <newname>"]
    assert run(shell, "mkdir") == ["Usage: mkdir <dirname>"]
    assert run(shell, "del") == ["Usage: del <filename>"]


def test_help(shell):
    lines = run(shell, "help")
    assert lines[0] == "COMMAND HELP MENU"
    assert any(ln.startswith("  dir / ls [path]") for ln in lines)
    assert run(shell, "help cat") == ["type / cat <file>", "  Show file contents"]


def test_echo_joins_arguments(shell):
    assert run(shell, "echo hello    world") == ["hello world"]


# ---- filesystem commands

def test_dir_root_listing(shell):
    lines = run(shell, "dir")
    assert lines[0] == "Contents of C:\\:"
    assert lines[1].split() == ["Name", "Type", "Size"]
    assert lines[3].split() == ["C:", "<DIR>", "-"]
    kernel_size = str(len(shell.fs.get_file("C:\\System\\kernel.sys")))
    assert ["kernel.sys", "FILE", kernel_size, "bytes"] in [ln.split() for ln in lines]
    total = shell.fs.total_size()
    assert lines[-1] == f"Directories: 6, Files: 6, Total: {total} bytes"


def test_dir_with_path_argument(shell):
    lines = run(shell, "dir System")
    assert lines[0] == "Contents of C:\\System\\:"
    names = [ln.split()[0] for ln in lines[3:-2]]
    assert names == ["System", "kernel.sys"]
    lower = run(shell, "dir c:\\system")
    assert lower[-1] == lines[-1]


def test_cd_and_pwd(shell):
    assert run(shell, "cd") == ["Current directory: C:\\"]
    assert run(shell, "cd Users") == ["Current directory: C:\\Users\\"]
    assert run(shell, "pwd") == ["Current directory: C:\\Users\\"]
    assert run(shell, "cd ..") == ["Current directory: C:\\"]


def test_cd_missing(shell):
    run(shell, "cd System")
    assert run(shell, "cd nowhere") == ["Directory 'nowhere' not found"]
    assert shell.session.current_directory == "C:\\System\\"


def test_type(shell):
    lines = run(shell, "type System\\kernel.sys")
    assert lines[0] == "Contents of System\\kernel.sys:"
    assert "Status: Operational" in lines
    assert run(shell, "type ghost.txt") == ["File 'C:\\ghost.txt' not found"]


def test_mkdir(shell):
    run(shell, "cd Documents")
    assert run(shell, "mkdir Games") == ["Directory 'Games' created"]
    assert shell.fs.directories["C:\\Documents\\Games\\"] == "User Created Directory"
    assert run(shell, "mkdir Games") == ["Directory 'Games' already exists"]
    assert any(ln.split()[0] == "Games" for ln in run(shell, "dir"))
    assert run(shell, "cd Games") == ["Current directory: C:\\Documents\\Games\\"]


def test_del(shell):
    assert run(shell, "del boot.ini") == ["File 'boot.ini' deleted"]
    assert not shell.fs.has_file("C:\\boot.ini")


def test_del_missing_leaves_store_unchanged(shell):
    before = (dict(shell.fs.directories), dict(shell.fs.files))
    lines = run(shell, "del ghost.txt")
    assert lines == ["File 'C:\\ghost.txt' not found"]
    assert (dict(shell.fs.directories), dict(shell.fs.files)) == before


def test_copy_and_rename(shell):
    content = shell.fs.get_file("C:\\readme.txt")
    assert run(shell, "copy readme.txt C:\\Documents\\readme.bak") == [
        "File copied from 'readme.txt' to 'C:\\Documents\\readme.bak'"
    ]
    assert shell.fs.get_file("C:\\Documents\\readme.bak") == content
    assert shell.fs.get_file("C:\\readme.txt") == content

    assert run(shell, "rename readme.txt intro.txt") == ["File renamed from 'readme.txt' to 'intro.txt'"]
    assert shell.fs.get_file("C:\\intro.txt") == content
    assert not shell.fs.has_file("C:\\readme.txt")

    assert run(shell, "copy ghost.txt x.txt") == ["Source file 'C:\\ghost.txt' not found"]
    assert run(shell, "ren ghost.txt x.txt") == ["File 'C:\\ghost.txt' not found"]


# ---- session commands

def test_theme(shell):
    lines = run(shell, "theme")
    assert lines[0] == "Available themes:"
    assert lines[1:] == ["  0: Cyan", "  1: Green", "  2: Yellow", "  3: Red", "  4: Magenta"]
    assert run(shell, "theme 2") == ["Theme changed to Yellow"]
    assert run(shell, "theme 2") == ["Theme changed to Magenta"]
    assert run(shell, "theme 5") == ["Invalid theme number. Use values 0-4"]
    assert run(shell, "theme x") == ["Invalid theme number. Use values 0-4"]
    assert shell.session.theme[0] == "MAGENTA"


def test_theme_recolours_output(shell):
    out = shell.stdout
    shell.dispatch("theme 1")
    mark = len(out.getvalue())
    shell.dispatch("ver")
    assert out.getvalue()[mark:].startswith(m.Fore.GREEN)


def test_color(shell):
    assert len(run(shell, "color")) == 17
    assert run(shell, "color 16") == ["Invalid color number. Use values 0-15"]
    assert run(shell, "color 12") == ["Text color changed successfully!"]
    assert shell.session.text_colour == 12
    mark = len(shell.stdout.getvalue())
    shell.dispatch("echo hi")
    assert shell.stdout.getvalue()[mark:].startswith(m.Fore.LIGHTRED_EX)


def test_user(shell):
    assert run(shell, "user") == ["Current user: user"]
    assert run(shell, "user bob") == ["User changed to: bob"]
    profile = shell.fs.get_file("C:\\Users\\bob\\profile.ini")
    assert profile == "[User]\nName=bob\nLevel=User\nLastLogin=05.03.2024 14:07"
    assert shell.fs.has_directory("C:\\Users\\bob\\")
    assert "bob@C:\\> " in plain(shell.prompt)


# ---- reports

def test_time_and_date(shell):
    assert run(shell, "time") == ["Current time: 14:07:09"]
    assert run(shell, "date") == ["Today: Tuesday, March 5, 2024"]


def test_info_and_mem(shell):
    info = run(shell, "info")
    assert "  Boot Time:       14:07:09" in info
    assert "  Total Files:     6" in info
    mem = run(shell, "mem")
    assert "File System: 6 files, 6 directories" in mem
    assert f"Total file size: {shell.fs.total_size()} bytes" in mem


def test_calc(shell):
    assert run(shell, "calc 5 + 3") == ["5 + 3 = 8"]
    assert run(shell, "calc 10 * 2.5") == ["10 × 2.5 = 25"]
    assert run(shell, "calc 4+6/2") == ["Invalid number format"]
    assert run(shell, "calc 8/0") == ["Error: division by zero!"]
    assert run(shell, "calc")[0] == "Simple calculator. Examples:"


# ---- the command loop

def test_history_is_recorded_in_order():
    shell, out = make_shell("dir\ncd ..\nhelp\nhistory\nexit\n")
    shell.cmdloop()
    text = plain(out.getvalue())
    entries = [ln for ln in text.splitlines() if re.match(r"^\d{3} ", ln)]
    assert entries == ["001 dir", "002 cd ..", "003 help", "004 history"]
    assert shell.session.history[-1] == "exit"


def test_edit_captures_until_end():
    shell, out = make_shell("edit notes.txt\nline one\nline two\nEND\nexit\n")
    shell.cmdloop()
    assert shell.fs.get_file("C:\\notes.txt") == "line one\nline two\n"
    assert "File 'notes.txt' saved (18 bytes)" in plain(out.getvalue())
    assert shell.session.history == ["edit notes.txt", "exit"]


def test_edit_registers_missing_directory():
    shell, _ = make_shell("edit C:\\Notes\\todo.txt\nbuy milk\nEND\n")
    shell.cmdloop()
    assert shell.fs.get_file("C:\\Notes\\todo.txt") == "buy milk\n"
    assert shell.fs.directories["C:\\Notes\\"] == "User Directory"


def test_edit_with_closed_input_ends_session():
    shell, out = make_shell("edit draft.txt\nhalf a line\n")
    shell.cmdloop()
    assert not shell.fs.has_file("C:\\draft.txt")
    assert not shell.session.running
    assert "Input closed; ending session." in plain(out.getvalue())


def test_end_of_input_ends_loop():
    host = m.ConsoleHost()
    shell, out = make_shell("ver\n", host=host)
    shell.cmdloop()
    assert "MKS-OS version 1.3" in plain(out.getvalue())
    assert host.pending is None


def test_exit_stops_without_power_request():
    host = m.ConsoleHost()
    shell, out = make_shell("exit\nver\n", host=host)
    shell.cmdloop()
    text = plain(out.getvalue())
    assert "Ending session..." in text
    assert "MKS-OS version" not in text
    assert host.pending is None


def test_shutdown_requests_power_off():
    host = m.ConsoleHost()
    shell, out = make_shell("shutdown\nver\n", host=host, countdown=2)
    shell.cmdloop()
    text = plain(out.getvalue())
    assert "System will shutdown in 2..." in text
    assert "System will shutdown in 1..." in text
    assert "MKS-OS version" not in text
    assert host.pending == "shutdown"


def test_reboot_requests_reboot():
    host = m.ConsoleHost()
    shell, out = make_shell("reboot\n", host=host)
    shell.cmdloop()
    assert "Rebooting system..." in plain(out.getvalue())
    assert host.pending == "reboot"


def test_typed_eof_is_an_unknown_command():
    shell, out = make_shell("EOF\nver\n")
    shell.cmdloop()
    text = plain(out.getvalue())
    assert "Command 'eof' not found. Type 'help' for help." in text
    assert "MKS-OS version 1.3" in text
    assert shell.session.history == ["EOF", "ver"]


def test_cd_up_from_edit_created_directory():
    shell, _ = make_shell("edit C:\\a\\b\\f.txt\nx\nEND\ncd C:\\a\\b\ncd ..\n")
    shell.cmdloop()
    assert shell.session.current_directory == "C:\\"
    assert shell.fs.has_directory(shell.session.current_directory)


def test_building_shell_leaves_readline_alone():
    with mock.patch.object(m, "readline") as fake:
        shell = m.MKShell(settings=m.Settings(animate=False), stdout=io.StringIO(),
                          clock=lambda: WHEN)
        assert shell.use_rawinput
        assert fake.method_calls == []


def test_loop_installs_and_restores_completer():
    with mock.patch.object(m, "readline") as fake, \
            mock.patch("builtins.input", side_effect=EOFError):
        shell = m.MKShell(settings=m.Settings(animate=False), stdout=io.StringIO(),
                          clock=lambda: WHEN)
        shell.cmdloop()
    fake.set_completer_delims.assert_any_call(" \t\n")
    assert fake.set_completer.call_args_list == [
        mock.call(shell.complete),
        mock.call(fake.get_completer.return_value),
    ]
    fake.set_completer_delims.assert_called_with(fake.get_completer_delims.return_value)
    assert not shell.session.running


# ---- completion

def test_complete_names(shell):
    assert shell.completenames("h") == ["help", "history"]
    assert shell.completenames("RE") == ["reboot", "ren", "rename"]


def test_complete_paths(shell):
    assert shell._complete_path("Sys") == ["System\\"]
    assert shell._complete_path("C:\\System\\k") == ["C:\\System\\kernel.sys"]
    assert shell.completedefault("read", "type read", 5, 9) == ["readme.txt"]
    assert shell.completedefault("x", "ver x", 4, 5) == []
