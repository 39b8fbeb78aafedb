import logging
import os
from fastapi import APIRouter, HTTPException, Depends
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.output_parsers import StrOutputParser
from langchain_core.output_parsers.pydantic import PydanticOutputParser

from letter_studio.dependencies import get_current_active_user
from letter_studio.models_db import User
from letter_studio.sanitizer import clean_ai_output, prepare_letter_body
from letter_studio.schemas import (
    AnalyzeRequest,
    CleanRequest,
    CleanResponse,
    CoverLetterAnalysis,
    GenerateRequest,
    GenerateResponse,
    UserProfile,
)
from letter_studio.utils.retry_helper import retry_with_backoff, AIServiceBusyError

logger = logging.getLogger(__name__)
router = APIRouter()

NOT_SPECIFIED = "Not specified"


def get_llm(temperature: float = 0.7) -> ChatGoogleGenerativeAI:
    return ChatGoogleGenerativeAI(model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"), temperature=temperature)


# --- Chains ---

def create_cover_letter_chain():
    """Sets up the chain that writes a complete cover letter body."""
    prompt = ChatPromptTemplate.from_template(
        "You are an expert career coach AI. Write a professional and compelling cover letter.\n\n"
        "**Applicant:**\n"
        "Name: {fullName}\n"
        "Email: {email}\n"
        "Location: {location}\n\n"
        "**Job Details:**\n"
        "Company: {company_name}\n"
        "Position: {job_title}\n"
        "Job Description: {job_description}\n\n"
        "**Instructions:**\n"
        "1.  Tailor the letter to the job description and highlight the strongest matches.\n"
        "2.  Start with 'Dear Hiring Manager,' and end with 'Sincerely,' followed by the applicant's name.\n"
        "3.  If a detail is unknown, use a bracketed placeholder such as [Your Name] or [Phone Number].\n"
        "4.  Return only the letter. Do not add notes, explanations or a summary of the letter.\n"
    )
    return prompt | get_llm() | StrOutputParser()


def create_suggestions_chain():
    """Sets up the chain that gives writing advice instead of a full letter."""
    prompt = ChatPromptTemplate.from_template(
        "You are an expert career coach AI. A candidate is writing a cover letter for the position below.\n\n"
        "Company: {company_name}\n"
        "Position: {job_title}\n"
        "Job Description: {job_description}\n\n"
        "Give concise, practical suggestions for the cover letter: which experiences and skills to emphasise, "
        "keywords from the job description to mirror, and how to open and close the letter. "
        "Use a short bulleted list per topic."
    )
    return prompt | get_llm(temperature=0.5) | StrOutputParser()


def create_analysis_chain():
    """Sets up the chain that scores a cover letter against a job description."""
    parser = PydanticOutputParser(pydantic_object=CoverLetterAnalysis)

    prompt = ChatPromptTemplate.from_template(
        "You are an experienced recruiter. Evaluate the cover letter below against the job description.\n\n"
        "**Job Description:**\n{job_description}\n\n"
        "**Cover Letter:**\n{cover_letter}\n\n"
        "Score overall quality, alignment with the job, persuasiveness and clarity from 0 to 100. "
        "List concrete strengths, weaknesses and improvement suggestions, then write an optimized version "
        "of the letter body that keeps the candidate's facts.\n\n"
        "**Output Format:**\n"
        "Please format your response as a JSON object that strictly follows this schema:\n"
        "{format_instructions}\n",
        partial_variables={"format_instructions": parser.get_format_instructions()}
    )
    return prompt | get_llm(temperature=0.2) | parser


# --- API Endpoints ---

@router.post("/cover-letters/generate", response_model=GenerateResponse)
async def generate_cover_letter(
    request: GenerateRequest,
    db_user: User = Depends(get_current_active_user),
):
    """
    Generates a complete cover letter or writing suggestions for a job description.
    """
    if not (request.jobDescription or "").strip():
        target = "suggestions" if request.type == "suggestions" else "a cover letter"
        raise HTTPException(status_code=400, detail=f"Please provide a job description to generate {target}")

    job_title = (request.jobTitle or "").strip() or NOT_SPECIFIED
    company_name = (request.companyName or "").strip() or NOT_SPECIFIED

    try:
        if request.type == "suggestions":
            logger.info(f"Generating cover letter suggestions for {job_title} at {company_name}")
            chain = create_suggestions_chain()
            suggestions = await retry_with_backoff(chain.ainvoke, {
                "job_title": job_title,
                "company_name": company_name,
                "job_description": request.jobDescription,
            })
            suggestions = suggestions.strip()
            return GenerateResponse(content=suggestions, suggestions=suggestions)

        logger.info(f"Generating cover letter for {job_title} at {company_name}")
        profile = UserProfile.from_user(db_user)
        chain = create_cover_letter_chain()
        raw_letter = await retry_with_backoff(chain.ainvoke, {
            "fullName": profile.name or "[Your Name]",
            "email": profile.email or "[Email Address]",
            "location": profile.location or "[Your Address]",
            "job_title": job_title,
            "company_name": company_name,
            "job_description": request.jobDescription,
        })
        return GenerateResponse(content=prepare_letter_body(raw_letter, profile))

    except AIServiceBusyError as e:
        logger.warning(f"Cover letter generation deferred: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Error generating cover letter: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to generate cover letter: {e}")


@router.post("/cover-letters/analyze", response_model=CoverLetterAnalysis)
async def analyze_cover_letter(
    request: AnalyzeRequest,
    db_user: User = Depends(get_current_active_user),
):
    """
    Scores a cover letter against a job description and proposes an optimized version.
    """
    if not (request.coverLetter or "").strip() or not (request.jobDescription or "").strip():
        raise HTTPException(
            status_code=400,
            detail="Please provide both a job description and cover letter to analyze",
        )

    try:
        logger.info(f"Analyzing cover letter for user {db_user.id}")
        chain = create_analysis_chain()
        analysis: CoverLetterAnalysis = await retry_with_backoff(chain.ainvoke, {
            "cover_letter": request.coverLetter,
            "job_description": request.jobDescription,
        })
        return analysis.model_copy(update={"optimizedCoverLetter": clean_ai_output(analysis.optimizedCoverLetter)})

    except AIServiceBusyError as e:
        logger.warning(f"Cover letter analysis deferred: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Error analyzing cover letter: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error analyzing cover letter: {e}")


@router.post("/cover-letters/clean", response_model=CleanResponse)
async def clean_cover_letter(
    request: CleanRequest,
    db_user: User = Depends(get_current_active_user),
):
    """
    Strips AI commentary from a letter body and fills in the user's details.
    """
    cleaned = prepare_letter_body(request.text, UserProfile.from_user(db_user))
    return CleanResponse(cleanedLetterBody=cleaned)
