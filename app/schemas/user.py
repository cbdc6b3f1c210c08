from pydantic import BaseModel, EmailStr, Field

class UserBase(BaseModel):
    email: EmailStr

class OwnerRegister(UserBase):
    password: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    age: int = Field(..., ge=16, le=120)
    phone: str = Field(..., min_length=1)
    nic: str = Field(..., min_length=1)

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class UserSummary(BaseModel):
    id: str
    email: str

    class Config:
        from_attributes = True

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class RegistrationResponse(Token):
    user: UserSummary
    message: str = "Registration successful"

class LoginResponse(Token):
    user: UserSummary

class EmailCheckResponse(BaseModel):
    exists: bool
