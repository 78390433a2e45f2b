from birthlink.api import create_app

# pip install -e ".[server]" && uvicorn birthlink.main:app
app = create_app()
