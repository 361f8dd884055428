"""
Interactive console prompt for settings missing from the configuration
"""
import getpass
from typing import Callable, Dict, Optional

from .config import Configuration


class ConsoleSetup:
    """Asks for the username and password on the terminal"""

    def __init__(self, input_func: Optional[Callable[[str], str]] = None,
                 password_func: Optional[Callable[[str], str]] = None):
        self.input_func = input_func or input
        self.password_func = password_func or getpass.getpass

    def collect(self, config: Configuration, force: bool = False) -> Dict[str, Optional[str]]:
        """Return the fields the user supplied, skipping those already set unless forced"""
        supplied = {}

        if force or not config.username:
            prompt = "Username"
            if config.username:
                prompt += f" [{config.username}]"
            username = self.input_func(f"{prompt}: ").strip()
            if username:
                supplied["username"] = username

        if force or not config.password:
            password = self.password_func("Password: ")
            if password:
                supplied["password"] = password

        return supplied

    def __call__(self, config: Configuration) -> Dict[str, Optional[str]]:
        return self.collect(config)
