from .application import Application
from .respond import respond
from .server import Server

__all__ = ['Application', 'respond', 'Server']
