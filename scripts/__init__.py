"""scripts package initializer.

Making `scripts` a package allows `python -m scripts.set_users_collection`
to work from the project root once `moodvibe` is installed.
"""

__all__ = ["set_users_collection"]
