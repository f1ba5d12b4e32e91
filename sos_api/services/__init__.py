# Business Logic Services
