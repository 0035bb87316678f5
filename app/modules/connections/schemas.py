from pydantic import BaseModel


class ConnectionStatusResponse(BaseModel):
    github: bool
    vercel: bool
