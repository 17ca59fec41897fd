# vitrine_app/wsgi.py
# -*- coding: utf-8 -*-
from vitrine_app import create_app

app = create_app()
