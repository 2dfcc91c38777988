# main.py
# Entry point for uvicorn/gunicorn:
#     uvicorn main:app --reload
#     gunicorn main:app --config gunicorn.conf.py
from heirlooms.app import create_app

app = create_app()
