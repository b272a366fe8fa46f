#!/usr/bin/env python
"""
Command line entry point for the medboard records service.

Sets ``medboard.settings`` as the default settings module and hands
over to Django's management utility (``runserver``, ``migrate``,
``seed_records``, ``refresh_caches`` ...).
"""
import os
import sys


def main() -> None:
    """Run administrative tasks for the records service."""
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'medboard.settings')
    try:
        from django.core.management import execute_from_command_line  # type: ignore
    except ImportError as exc:
        raise ImportError(
            "Couldn't import Django. Are you sure it's installed and "
            "available on your PYTHONPATH environment variable? Did you "
            "forget to activate a virtual environment?"
        ) from exc
    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
