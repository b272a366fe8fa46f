"""Django project package for the medboard hospital records service."""
