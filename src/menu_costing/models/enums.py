"""
Enumerations shared by the costing models.

- MeasurementClass: the three unit families quantities are converted within
- FeeType: how a menu fee is charged
- ApportionmentType: how monthly fixed costs are spread over menu sales
"""

from enum import Enum


class MeasurementClass(str, Enum):
    """
    Measurement class of a unit or ingredient.

    Quantities are only ever converted inside one class, to that class's
    base unit (gram, milliliter, unit).
    """

    WEIGHT = "weight"
    VOLUME = "volume"
    COUNT = "count"


class FeeType(str, Enum):
    """
    Menu fee kind.

    Values:
        FIXED: Flat currency amount charged per sale
        PERCENTAGE: Percentage of the sale price
    """

    FIXED = "fixed"
    PERCENTAGE = "percentage"


class ApportionmentType(str, Enum):
    """
    Policy used to charge each menu sale a share of the workspace fixed costs.

    Values:
        PERCENTAGE_OF_SALE: policy value is a percentage of the sale price
        FIXED_PER_PRODUCT: policy value is a flat currency amount per sale
        PROPORTIONAL_TO_SALES: policy value is the estimated monthly unit sales;
            the monthly fixed cost total is divided by it
    """

    PERCENTAGE_OF_SALE = "percentage_of_sale"
    FIXED_PER_PRODUCT = "fixed_per_product"
    PROPORTIONAL_TO_SALES = "proportional_to_sales"
