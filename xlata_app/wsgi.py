# xlata_app/wsgi.py
# -*- coding: utf-8 -*-
from xlata_app import create_app

app = create_app()
