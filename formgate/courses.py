"""Course catalog used as the chatbot's only knowledge source."""

from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class Course:
    name: str
    description: str
    outcome: str
    duration: str
    tools: tuple[str, ...]
    content: str
    placement: bool
    type: str
    coursetype: str  # Flagship | Short | Assistance

    def summary(self) -> dict[str, object]:
        return {
            "name": self.name,
            "description": self.description,
            "duration": self.duration,
            "placement": self.placement,
            "type": self.type,
            "coursetype": self.coursetype,
        }


COURSES: tuple[Course, ...] = (
    Course(
        name="Full-Stack Software Engineering Pro",
        description="Complete full-stack development course covering frontend and backend technologies",
        outcome="Become a professional full-stack developer capable of building complete web applications",
        duration="6 months",
        tools=("React", "Node.js", "MongoDB"),
        content="HTML, CSS, JavaScript, React, Node.js, Express, MongoDB, Git",
        placement=True,
        type="Programming",
        coursetype="Flagship",
    ),
    Course(
        name="Data Science & Analytics Pro",
        description="Comprehensive data science course covering statistics, machine learning, and data visualization",
        outcome="Master data analysis, machine learning algorithms, and data visualization techniques",
        duration="6 months",
        tools=("Python", "Pandas", "TensorFlow"),
        content="Python, Statistics, Machine Learning, Data Visualization, SQL",
        placement=True,
        type="Programming",
        coursetype="Flagship",
    ),
    Course(
        name="Digital Marketing Pro",
        description="Complete digital marketing course covering all aspects of online marketing",
        outcome="Become a professional digital marketer with expertise in SEO, SEM, and social media",
        duration="4 months",
        tools=("Google Ads", "Facebook Ads", "Analytics"),
        content="SEO, SEM, Social Media Marketing, Content Marketing, Email Marketing",
        placement=True,
        type="Business",
        coursetype="Flagship",
    ),
    Course(
        name="UI/UX Design Pro",
        description="Professional UI/UX design course covering design principles and tools",
        outcome="Master user interface and user experience design with industry-standard tools",
        duration="5 months",
        tools=("Figma", "Adobe XD", "Photoshop"),
        content="Design Principles, User Research, Prototyping, Design Systems",
        placement=True,
        type="Design",
        coursetype="Flagship",
    ),
    Course(
        name="Python Programming",
        description="Learn Python programming from basics to advanced concepts",
        outcome="Gain proficiency in Python programming for various applications",
        duration="2 months",
        tools=("Python", "Jupyter"),
        content="Python Basics, Data Structures, OOP, File Handling",
        placement=False,
        type="Programming",
        coursetype="Short",
    ),
    Course(
        name="Web Development Fundamentals",
        description="Learn the basics of web development with HTML, CSS, and JavaScript",
        outcome="Build responsive websites using modern web technologies",
        duration="45 days",
        tools=("HTML", "CSS", "JavaScript"),
        content="HTML5, CSS3, JavaScript, Responsive Design",
        placement=False,
        type="Programming",
        coursetype="Short",
    ),
    Course(
        name="React Development",
        description="Advanced React development course for building modern web applications",
        outcome="Build complex React applications with modern patterns and best practices",
        duration="3 months",
        tools=("React", "Redux", "TypeScript"),
        content="React Hooks, Context API, Redux, TypeScript, Testing",
        placement=True,
        type="Programming",
        coursetype="Assistance",
    ),
    Course(
        name="Graphic Design Essentials",
        description="Learn graphic design fundamentals with industry-standard tools",
        outcome="Create professional graphics and designs for various media",
        duration="2 months",
        tools=("Photoshop", "Illustrator", "InDesign"),
        content="Color Theory, Typography, Layout Design, Branding",
        placement=False,
        type="Design",
        coursetype="Short",
    ),
)


@lru_cache(maxsize=1)
def course_context_json() -> str:
    """Compact JSON of the catalog, computed once per process."""
    return json.dumps([c.summary() for c in COURSES], separators=(",", ":"))
