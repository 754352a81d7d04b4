"""
api/routes/devices.py -- Device registration and lookup.

Routes:
  GET  /devices            -- classify the caller's own User-Agent
  GET  /devices/{user_id}  -- a user's recorded devices plus the most recent one
  POST /devices            -- register a device for a user

Login records a device automatically (auth.sessions.SessionManager.login);
POST /devices is the explicit registration path.
"""

from fastapi import APIRouter, Request

from api.models import CallerDevice, DeviceCreate, DeviceEnvelope, DeviceList, DeviceOut
from auth.devices import classify_user_agent
from auth.errors import ValidationError
from auth.models import Device
from auth.store import UserStore

router = APIRouter(prefix="/devices")


@router.get("", response_model=CallerDevice)
def caller_device(request: Request) -> CallerDevice:
    return CallerDevice(logged_in_from=classify_user_agent(request.headers.get("user-agent")))


@router.get("/{user_id}", response_model=DeviceList)
def list_devices(request: Request, user_id: int) -> DeviceList:
    """Return every device name recorded for the user (newest first).

    An unknown user simply has no devices; this is not a 404.
    """
    store: UserStore = request.app.state.user_store
    latest = store.latest_device(user_id)
    return DeviceList(
        devices=[d.name for d in store.list_devices(user_id)],
        latest=latest.name if latest is not None else None,
        logged_in_from=classify_user_agent(request.headers.get("user-agent")),
    )


@router.post("", response_model=DeviceEnvelope, status_code=201)
def create_device(request: Request, body: DeviceCreate) -> DeviceEnvelope:
    store: UserStore = request.app.state.user_store
    if store.get_by_id(body.user_id) is None:
        raise ValidationError([{"field": "userId", "message": "User does not exist"}])
    device_id = store.create_device(Device(user_id=body.user_id, name=body.name))
    return DeviceEnvelope(message="Device created successfully", data=DeviceOut.from_device(store.get_device(device_id)))
