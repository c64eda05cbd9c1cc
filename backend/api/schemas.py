from typing import Dict, List, Optional, Literal
from pydantic import BaseModel, Field
from datetime import datetime, date

Instruction = Literal["before_food", "after_food", "before_sleep", "with_food", "empty_stomach"]
FrequencyType = Literal["times_a_day", "every_x_hours"]
DoseStatus = Literal["pending", "taken", "skipped"]
DisplayStatus = Literal["pending", "taken", "skipped", "overdue"]
DoseAction = Literal["take", "skip"]
OverflowPolicy = Literal["truncate", "wrap"]

# Stored records

class Profile(BaseModel):
    id: str
    name: str
    date_of_birth: Optional[date] = None
    wake_time: str  # HH:MM, local wall clock
    sleep_time: str  # HH:MM, local wall clock
    picture: Optional[str] = None  # opaque image reference

class Medicine(BaseModel):
    id: str
    profile_id: str
    name: str
    dose: str
    course_days: int
    instructions: Instruction
    frequency_type: FrequencyType
    frequency_value: int  # doses a day, or hours between doses
    start_date: datetime
    doctor_name: Optional[str] = None
    notes: Optional[str] = None
    image_urls: List[str] = []
    created_at: Optional[datetime] = None

class Schedule(BaseModel):
    id: str
    medicine_id: str
    profile_id: str
    scheduled_time: datetime
    status: DoseStatus = "pending"
    actual_taken_time: Optional[datetime] = None

# Requests

class CreateProfileReq(BaseModel):
    name: str
    wake_time: str = "07:00"
    sleep_time: str = "22:00"
    date_of_birth: Optional[date] = None
    picture: Optional[str] = None

class UpdateProfileReq(BaseModel):
    name: str
    wake_time: str
    sleep_time: str
    date_of_birth: Optional[date] = None
    picture: Optional[str] = None

class CreateMedicineReq(BaseModel):
    profile_id: str
    name: str
    dose: str
    course_days: int = 7
    instructions: Instruction = "after_food"
    frequency_type: FrequencyType = "times_a_day"
    frequency_value: int = 3
    start_date: Optional[datetime] = None  # defaults to creation time
    doctor_name: Optional[str] = None
    notes: Optional[str] = None
    image_urls: List[str] = []

class ResolveDoseReq(BaseModel):
    action: DoseAction

# Responses

class IdResp(BaseModel):
    ok: bool = True
    id: str

class MedicineCreatedResp(BaseModel):
    ok: bool = True
    id: str
    schedule_count: int
    reminders_scheduled: int = 0

class ScheduleView(BaseModel):
    """Schedule as displayed, with the derived overdue state applied"""
    id: str
    medicine_id: str
    profile_id: str
    scheduled_time: datetime
    status: DoseStatus
    display_status: DisplayStatus
    actual_taken_time: Optional[datetime] = None
    medicine_name: Optional[str] = None
    dose: Optional[str] = None

class ResolveDoseResp(BaseModel):
    schedule: ScheduleView
    changed: bool

class AdherenceResp(BaseModel):
    adherence_pct: float = Field(..., ge=0, le=100)
    past: int
    taken: int
    skipped: int
    missed: int
    start: Optional[datetime] = None
    end: Optional[datetime] = None

class TodayResp(BaseModel):
    date: date
    profile_id: str
    schedules: List[ScheduleView]
    adherence: AdherenceResp
    next_dose_ts: Optional[datetime] = None

class HistoryResp(BaseModel):
    entries: List[ScheduleView]
    total_count: int

class ReportRow(BaseModel):
    schedule_id: str
    scheduled_time: datetime
    medicine_name: str
    dose: str
    status: DisplayStatus
    actual_taken_time: Optional[datetime] = None

class ReportResp(BaseModel):
    profile: Profile
    start: datetime
    end: datetime
    generated_at: datetime
    medicines: List[Medicine]
    rows: List[ReportRow]
    adherence: AdherenceResp
    adherence_by_medicine: Dict[str, AdherenceResp]
