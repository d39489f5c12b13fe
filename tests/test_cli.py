"""Tests for the command-line entry point in main.py.

Each test points the CLI at a throwaway SQLite file under tmp_path and passes
--password so nothing prompts.
"""

import pytest

from main import build_parser, main


@pytest.fixture
def db_args(tmp_path):
    return ["--database-url", f"sqlite:///{tmp_path / 'cli.db'}"]


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage: school-records" in capsys.readouterr().out


def test_init_db_creates_admin_once(db_args, capsys):
    assert main(db_args + ["init-db", "--admin", "admin", "--email", "admin@school.test", "--password", "admin123"]) == 0
    out = capsys.readouterr().out
    assert "Admin 'admin' created" in out

    assert main(db_args + ["init-db", "--admin", "admin", "--password", "admin123"]) == 0
    assert "already exists" in capsys.readouterr().out


def test_create_user_and_login(db_args, capsys):
    assert main(db_args + ["create-user", "jsmith", "--role", "teacher", "--first-name", "John",
                           "--last-name", "Smith", "--password", "teach123"]) == 0
    assert "Created TEACHER 'jsmith'" in capsys.readouterr().out

    assert main(db_args + ["login", "jsmith", "--password", "teach123"]) == 0
    assert "Welcome, John Smith (TEACHER)" in capsys.readouterr().out

    assert main(db_args + ["login", "jsmith", "--password", "wrong999"]) == 1
    assert "Login failed" in capsys.readouterr().out


def test_create_user_duplicate_fails(db_args, capsys):
    assert main(db_args + ["create-user", "dup", "--password", "teach123"]) == 0
    assert main(db_args + ["create-user", "dup", "--password", "teach123"]) == 1
    assert "Could not create user 'dup'" in capsys.readouterr().out


def test_create_student_with_generated_password(db_args, capsys):
    rc = main(db_args + ["create-student", "stu01", "S2024001", "--first-name", "Ada", "--last-name", "Lovelace",
                         "--dob", "2010-12-10", "--gender", "female", "--generate-password"])
    assert rc == 0
    out = capsys.readouterr().out
    assert "Created student Ada Lovelace (S2024001)" in out
    temp = next(line.split(": ", 1)[1] for line in out.splitlines() if "Temporary password" in line)

    assert main(db_args + ["login", "stu01", "--password", temp]) == 0

    assert main(db_args + ["list-students"]) == 0
    listing = capsys.readouterr().out
    assert "S2024001" in listing
    assert "1 active student(s)" in listing


def test_create_student_bad_date_returns_2(db_args, capsys):
    rc = main(db_args + ["create-student", "stu02", "S2", "--dob", "10/12/2010", "--password", "learn456"])
    assert rc == 2
    assert "Expected format: YYYY-MM-DD" in capsys.readouterr().out


def test_passwd(db_args, capsys):
    main(db_args + ["create-user", "pwuser", "--password", "first123"])
    identity_id = int(capsys.readouterr().out.rsplit("(id ", 1)[1].rstrip(").\n"))

    assert main(db_args + ["passwd", str(identity_id), "--password", "second123"]) == 0
    assert main(db_args + ["login", "pwuser", "--password", "second123"]) == 0
    assert main(db_args + ["passwd", "9999", "--password", "second123"]) == 1


def test_check_reports_availability(db_args, capsys):
    main(db_args + ["create-user", "taken", "--email", "taken@school.test", "--password", "teach123"])
    capsys.readouterr()
    assert main(db_args + ["check", "--username", "taken", "--email", "free@school.test"]) == 0
    out = capsys.readouterr().out
    assert "reachable" in out
    assert "Username 'taken': taken" in out
    assert "Email 'free@school.test': available" in out


def test_list_students_empty(db_args, capsys):
    assert main(db_args + ["list-students"]) == 0
    assert "No active students." in capsys.readouterr().out


def test_parser_rejects_unknown_role():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["create-user", "x", "--role", "janitor"])
