#!/usr/bin/env python
"""
Django's command-line utility for administrative tasks.

Lanes Board - Kanban backend
"""

import os
import sys


def main():
    """Run administrative tasks."""

    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.development')

    try:
        from django.core.management import execute_from_command_line
    except ImportError as exc:
        raise ImportError(
            "Couldn't import Django. Are you sure it's installed and "
            "available on your PYTHONPATH environment variable? Did you "
            "forget to activate a virtual environment?"
        ) from exc

    # Shortcuts on top of the Django commands
    if len(sys.argv) > 1 and sys.argv[1] in ('setup', 'reset'):
        import django
        from django.core.management import call_command

        django.setup()

        if sys.argv[1] == 'setup':
            print("🚀 Setting up Lanes Board...")
            call_command('migrate')
            call_command('collectstatic', interactive=False, verbosity=0)
            call_command('seed_demo')
            print("✅ Setup complete")
        else:
            confirm = input("⚠️  This deletes ALL data. Continue? (y/N): ")
            if confirm.lower() == 'y':
                call_command('flush', interactive=False)
                call_command('migrate')
                call_command('seed_demo')
                print("✅ Reset complete")
        return

    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
